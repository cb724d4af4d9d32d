# services/google_calendar.py
"""
Cliente REST do Google (OAuth e Calendar API v3)
"""

import logging
import os
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_TIMEOUT = 20


class GoogleCalendarError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def get_http_client() -> httpx.Client:
    return httpx.Client(timeout=GOOGLE_TIMEOUT)


def redirect_uri() -> str:
    return f"{os.getenv('APP_URL', '')}/api/auth/google/callback"


def _post_token(dados: Dict, erro: str) -> Dict:
    corpo = {
        'client_id': os.getenv('GOOGLE_CLIENT_ID'),
        'client_secret': os.getenv('GOOGLE_CLIENT_SECRET'),
        **dados,
    }
    try:
        with get_http_client() as client:
            response = client.post(GOOGLE_TOKEN_URL, data=corpo)
    except httpx.HTTPError as e:
        logger.error(f"❌ Erro de conexão com o Google OAuth: {e}")
        raise GoogleCalendarError(erro)

    if response.status_code != 200:
        logger.error(f"❌ Google OAuth respondeu {response.status_code}: {response.text}")
        raise GoogleCalendarError(erro, response.status_code)
    return response.json()


def trocar_codigo_por_tokens(code: str) -> Dict:
    """Troca o authorization code pelos tokens (access_token, refresh_token, expires_in)."""
    return _post_token({
        'code': code,
        'redirect_uri': redirect_uri(),
        'grant_type': 'authorization_code',
    }, 'Falha ao obter tokens do Google')


def renovar_access_token(refresh_token: str) -> Dict:
    return _post_token({
        'refresh_token': refresh_token,
        'grant_type': 'refresh_token',
    }, 'Falha ao atualizar token do Google')


def obter_calendario_primario(access_token: str) -> str:
    """ID do calendário principal do usuário; 'primary' se a consulta falhar."""
    try:
        with get_http_client() as client:
            response = client.get(
                f"{GOOGLE_CALENDAR_API}/users/me/calendarList/primary",
                headers={'Authorization': f"Bearer {access_token}"},
            )
    except httpx.HTTPError as e:
        logger.warning(f"⚠️ Não foi possível ler o calendário primário: {e}")
        return 'primary'

    if response.status_code != 200:
        return 'primary'
    return response.json().get('id') or 'primary'


def _chamar_eventos(metodo: str, url: str, access_token: str, erro: str, evento: Optional[Dict] = None,
                    ignorar_404: bool = False) -> Optional[Dict]:
    headers = {'Authorization': f"Bearer {access_token}"}
    try:
        with get_http_client() as client:
            response = client.request(metodo, url, headers=headers, json=evento)
    except httpx.HTTPError as e:
        logger.error(f"❌ {erro}: {e}")
        raise GoogleCalendarError(erro)

    if ignorar_404 and response.status_code == 404:
        return None
    if not response.is_success:
        logger.error(f"❌ {erro}: {response.text}")
        raise GoogleCalendarError(erro, response.status_code)
    return response.json() if response.content else None


def criar_evento(access_token: str, calendar_id: str, evento: Dict) -> str:
    criado = _chamar_eventos('POST', f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events",
                             access_token, 'Falha ao criar evento no Google Calendar', evento)
    return criado['id']


def atualizar_evento(access_token: str, calendar_id: str, event_id: str, evento: Dict):
    _chamar_eventos('PUT', f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events/{event_id}",
                    access_token, 'Falha ao atualizar evento no Google Calendar', evento)


def deletar_evento(access_token: str, calendar_id: str, event_id: str):
    """Remove o evento; um evento que já não existe (404) não é erro."""
    _chamar_eventos('DELETE', f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events/{event_id}",
                    access_token, 'Falha ao deletar evento no Google Calendar', ignorar_404=True)
