# routers/whatsapp.py
"""
Router público de validação do WhatsApp por código de 6 dígitos
"""

import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from google.api_core.exceptions import GoogleAPICallError
import schemas
import crud
from database import get_db
from firebase_admin import firestore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public", tags=["Cadastro Público"])


@router.post("/validate-whatsapp-code")
def validar_whatsapp(
    dados: schemas.WhatsAppCodigoRequest,
    db: firestore.client = Depends(get_db)
):
    """
    action 'send_code' gera e envia o código; 'validate_code' confere o código
    informado. Códigos errados respondem 200 com success=false.
    """
    logger.info(f"📱 Validação de WhatsApp: action={dados.action}, jid={dados.whatsapp_jid}")
    try:
        if dados.action == 'send_code':
            return crud.enviar_codigo(db, dados.whatsapp_jid)
        if dados.action == 'validate_code' and (dados.code or '').strip():
            return crud.validar_codigo(db, dados.whatsapp_jid, dados.code.strip())
    except GoogleAPICallError as e:
        logger.error(f"❌ Erro na validação do WhatsApp: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": "Erro interno do servidor"})

    return JSONResponse(status_code=400, content={"success": False, "error": "Ação inválida"})
