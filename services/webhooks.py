# services/webhooks.py
"""
Entrega HTTP de webhooks de saída (automação de WhatsApp e integrações)
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional

import httpx

logger = logging.getLogger(__name__)

WHATSAPP_WEBHOOK_URL = os.getenv('WHATSAPP_WEBHOOK_URL')
REGISTRATION_WEBHOOK_URL = os.getenv('REGISTRATION_WEBHOOK_URL')
WEBHOOK_TIMEOUT = 15

HEADERS_PADRAO = {
    'Content-Type': 'application/json',
    'X-Source': 'RespiraKids-EHR',
    'User-Agent': 'RespiraKids-Webhook/1.0',
}


class WebhookError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def get_http_client() -> httpx.Client:
    return httpx.Client(timeout=WEBHOOK_TIMEOUT)


def montar_payload(tipo: str, data: Dict) -> Dict:
    """Envelope padrão: {tipo, timestamp, data, webhook_id}."""
    return {
        'tipo': tipo,
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'data': data,
        'webhook_id': str(uuid.uuid4()),
    }


def enviar_webhook(url: str, payload: Dict, headers: Optional[Dict] = None) -> int:
    """
    Faz o POST do payload e devolve o status HTTP.

    Raises:
        WebhookError: URL ausente, falha de rede ou resposta fora da faixa 2xx
    """
    if not url:
        raise WebhookError('URL do webhook não configurada')

    todos_headers = dict(HEADERS_PADRAO)
    todos_headers.update(headers or {})

    try:
        with get_http_client() as client:
            response = client.post(url, json=payload, headers=todos_headers)
    except httpx.HTTPError as e:
        logger.error(f"❌ Erro ao enviar webhook para {url}: {e}")
        raise WebhookError(f"Erro de conexão: {e}")

    if not response.is_success:
        logger.error(f"❌ Webhook falhou: {response.status_code}")
        raise WebhookError(f"HTTP {response.status_code}: {response.text[:200]}", response.status_code)

    logger.info(f"✅ Webhook enviado para {url} ({response.status_code})")
    return response.status_code
