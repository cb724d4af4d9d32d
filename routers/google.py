# routers/google.py
"""
Router da integração com o Google Calendar (OAuth e sincronização)
"""

import os
import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse, RedirectResponse
import schemas
import crud
from database import get_db
from auth import get_current_profissional_user, get_current_staff_user
from firebase_admin import firestore
from services.google_calendar import GoogleCalendarError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Google Calendar"])


def _url_configuracoes(resultado: str) -> str:
    return f"{os.getenv('APP_URL', '')}/configuracoes?google={resultado}"


@router.get("/auth/google/callback")
def google_callback_redirect(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: firestore.client = Depends(get_db)
):
    """
    Retorno do consentimento do Google no navegador. O state carrega o id da
    pessoa; o usuário volta para a tela de configurações com o resultado.
    """
    if error or not code or not state:
        logger.warning(f"Callback OAuth sem código: error={error}")
        return RedirectResponse(_url_configuracoes('error'))
    try:
        crud.conectar_google_calendar(db, state, code)
    except GoogleCalendarError as e:
        logger.error(f"❌ Erro no callback OAuth: {e.message}")
        return RedirectResponse(_url_configuracoes('error'))
    return RedirectResponse(_url_configuracoes('success'))


@router.post("/auth/google/callback")
def google_callback(
    dados: schemas.GoogleCallbackRequest,
    db: firestore.client = Depends(get_db)
):
    try:
        crud.conectar_google_calendar(db, dados.user_id, dados.code)
    except GoogleCalendarError as e:
        logger.error(f"❌ Erro no callback OAuth: {e.message}")
        return JSONResponse(status_code=500, content={"success": False, "error": e.message})
    return {"success": True}


@router.delete("/me/google-calendar", status_code=status.HTTP_204_NO_CONTENT)
def desconectar_google_calendar(
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
):
    if not crud.desconectar_google_calendar(db, current_user.id):
        raise HTTPException(status_code=404, detail="Pessoa não encontrada")


@router.post("/google-calendar/sync")
def sincronizar_agendamento(
    dados: schemas.GoogleSyncRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    """Sincronização manual de um agendamento (INSERT, UPDATE ou DELETE)."""
    try:
        return crud.sincronizar_agendamento(db, dados.agendamento_id, dados.operation)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
