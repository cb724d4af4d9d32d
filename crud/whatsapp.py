# crud/whatsapp.py
"""
Validação de número de WhatsApp por código de 6 dígitos
"""

import hashlib
import logging
import secrets
from datetime import timedelta
from typing import Dict
from firebase_admin import firestore
from crud.utils import add_timestamps, agora_utc, parse_datetime, jid_para_telefone
from crud.webhooks import enviar_ou_enfileirar
from services import webhooks as webhook_service

logger = logging.getLogger(__name__)

COLECAO = 'whatsapp_validation_attempts'
VALIDADE_CODIGO = timedelta(minutes=10)
MAX_TENTATIVAS = 3


def gerar_codigo() -> str:
    return str(100000 + secrets.randbelow(900000))


def hash_codigo(codigo: str) -> str:
    return hashlib.sha256(codigo.encode('utf-8')).hexdigest()


def enviar_codigo(db: firestore.client, whatsapp_jid: str) -> Dict:
    """Gera o código, guarda o hash e dispara o webhook que manda a mensagem no WhatsApp."""
    telefone = jid_para_telefone(whatsapp_jid)
    codigo = gerar_codigo()
    expira_em = agora_utc() + VALIDADE_CODIGO

    payload = webhook_service.montar_payload('validar_whatsapp', {
        'whatsapp': telefone,
        'codigo': codigo,
        'created_at': agora_utc().isoformat(),
    })

    tentativa_ref = db.collection(COLECAO).document()
    tentativa_ref.set(add_timestamps({
        'phone_number': telefone,
        'code_hash': hash_codigo(codigo),
        'expires_at': expira_em,
        'attempts': 0,
        'validated': False,
        'validated_at': None,
        'webhook_sent': False,
        'webhook_id': payload['webhook_id'],
    }))

    logger.info(f"📱 Código de validação gerado para {telefone}")
    enviado = enviar_ou_enfileirar(db, 'validar_whatsapp', payload, webhook_service.WHATSAPP_WEBHOOK_URL)
    tentativa_ref.update({'webhook_sent': enviado})

    return {'success': True, 'action': 'code_sent', 'expiresAt': expira_em.isoformat()}


def validar_codigo(db: firestore.client, whatsapp_jid: str, codigo: str) -> Dict:
    telefone = jid_para_telefone(whatsapp_jid)
    agora = agora_utc()

    tentativas_validas = []
    query = db.collection(COLECAO) \
        .where('phone_number', '==', telefone) \
        .where('validated', '==', False)
    for doc in query.stream():
        tentativa = doc.to_dict()
        expira_em = parse_datetime(tentativa.get('expires_at'))
        if expira_em and expira_em > agora:
            tentativas_validas.append((doc, tentativa))

    if not tentativas_validas:
        return {'success': False, 'error': 'Código expirado ou não encontrado. Solicite um novo código.'}

    doc, validacao = max(tentativas_validas, key=lambda par: parse_datetime(par[1].get('created_at')) or agora)

    if validacao.get('attempts', 0) >= MAX_TENTATIVAS:
        return {
            'success': False,
            'action': 'blocked',
            'error': 'Número bloqueado por excesso de tentativas. Aguarde 15 minutos.',
            'blocked': True,
        }

    if secrets.compare_digest(validacao.get('code_hash', ''), hash_codigo(codigo)):
        doc.reference.update({'validated': True, 'validated_at': agora})
        logger.info(f"✅ WhatsApp {telefone} validado")
        return {'success': True, 'action': 'code_validated'}

    novas_tentativas = validacao.get('attempts', 0) + 1
    doc.reference.update({'attempts': novas_tentativas})
    restantes = MAX_TENTATIVAS - novas_tentativas
    return {
        'success': False,
        'error': f"Código incorreto. {restantes} tentativas restantes.",
        'attemptsRemaining': restantes,
        'blocked': restantes <= 0,
    }
