# routers/registro_publico.py
"""
Router do cadastro público de pacientes (sem login)
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Request, Body
from fastapi.responses import JSONResponse
from google.api_core.exceptions import GoogleAPICallError
from pydantic import ValidationError
import schemas
import crud
from database import get_db
from auth import get_current_staff_user
from firebase_admin import firestore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public", tags=["Cadastro Público"])


@router.post("/log-registration-event")
def registrar_evento(
    request: Request,
    payload: dict = Body(...),
    db: firestore.client = Depends(get_db)
):
    """Log das etapas do formulário. Sempre responde 200 para não travar o cadastro."""
    try:
        evento = schemas.RegistroEventoLog.model_validate(payload)
        return crud.registrar_evento_cadastro(db, evento, crud.extrair_ip(request.headers))
    except ValidationError as e:
        logger.warning(f"⚠️ Evento de cadastro inválido: {e.errors()}")
        return {"success": False, "error": "Dados do evento inválidos"}
    except GoogleAPICallError as e:
        logger.error(f"❌ Erro ao registrar evento de cadastro: {e}")
        return {"success": False, "error": str(e)}


@router.get("/registration-events")
def listar_eventos(
    session_id: Optional[str] = None,
    event_type: Optional[str] = None,
    limite: int = 100,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    return crud.listar_eventos_cadastro(db, session_id, event_type, limite)


@router.post("/patient-registration")
def finalizar_cadastro(
    dados: schemas.FinalizacaoCadastroRequest,
    db: firestore.client = Depends(get_db)
):
    """Cria responsáveis, pediatra, paciente, vínculos e contrato. Sempre 200."""
    if dados.action != 'finalize_registration':
        return {"success": False, "error": f"Ação desconhecida: {dados.action}"}
    try:
        return crud.finalizar_cadastro_paciente(db, dados.data)
    except (ValueError, GoogleAPICallError) as e:
        logger.error(f"❌ Erro fatal no cadastro: {e}")
        return {"success": False, "error": str(e)}


@router.post("/add-financial-responsible")
def adicionar_responsavel_financeiro(
    dados: schemas.AdicionarResponsavelFinanceiro,
    db: firestore.client = Depends(get_db)
):
    try:
        return crud.adicionar_responsavel_financeiro(db, dados)
    except (ValueError, GoogleAPICallError) as e:
        logger.error(f"❌ Erro ao adicionar responsável financeiro: {e}")
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
