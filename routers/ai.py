# routers/ai.py
"""
Router dos assistentes de IA da documentação clínica
"""

import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from openai import OpenAIError
import schemas
import crud
from database import get_db
from auth import get_current_profissional_user
from firebase_admin import firestore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["Inteligência Artificial"])


def _erro(mensagem: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": mensagem})


def _executar(operacao, acao: str):
    try:
        return operacao()
    except crud.LimiteRequisicoesExcedido as e:
        return _erro(str(e), 429)
    except ValueError as e:
        return _erro(str(e), 400)
    except (OpenAIError, RuntimeError) as e:
        logger.error(f"❌ Erro ao {acao}: {e}")
        return _erro(str(e), 500)


@router.post("/enhance-text")
def melhorar_texto(
    request: Request,
    dados: schemas.EnhanceTextRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
):
    ip = crud.extrair_ip(request.headers)
    return _executar(lambda: crud.melhorar_texto(db, dados.text, dados.action, ip), "melhorar texto")


@router.post("/patient-history")
def compilar_historico(
    request: Request,
    dados: schemas.PatientHistoryRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
):
    ip = crud.extrair_ip(request.headers)
    return _executar(
        lambda: crud.compilar_historico_paciente(db, dados.patient_name, dados.evolutions, dados.patient_id, ip),
        "compilar histórico",
    )


@router.post("/transcribe-audio")
def transcrever_audio(
    request: Request,
    dados: schemas.TranscribeAudioRequest,
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
):
    ip = crud.extrair_ip(request.headers)
    return _executar(
        lambda: crud.transcrever_audio(db, dados.audio_base64, dados.audio_type, ip, dados.language or 'pt'),
        "transcrever áudio",
    )
