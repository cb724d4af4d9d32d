# crud/webhooks.py
"""
Fila de webhooks de saída e cadastro dos webhooks assinantes
"""

import logging
from datetime import timedelta
from typing import Optional, List, Dict
from firebase_admin import firestore
import schemas
from crud.utils import add_timestamps, agora_utc, parse_datetime, buscar_documento
from services import webhooks as webhook_service
from services.webhooks import WebhookError

logger = logging.getLogger(__name__)

FILA_WEBHOOKS = 'webhook_queue'
WEBHOOKS = 'webhooks'
LIMITE_LOTE = 50
EVENTOS_WHATSAPP = ('validar_whatsapp', 'novo_responsavel_financeiro')


def enfileirar_webhook(db: firestore.client, evento: str, payload: Dict, max_tentativas: int = 3) -> Dict:
    item = {
        'evento': evento,
        'payload': payload,
        'status': 'pendente',
        'tentativas': 0,
        'max_tentativas': max_tentativas,
        'entregues': [],
        'proximo_retry': agora_utc(),
        'erro': None,
        'processado_em': None,
    }
    doc_ref = db.collection(FILA_WEBHOOKS).document()
    doc_ref.set(add_timestamps(item))
    item['id'] = doc_ref.id
    logger.info(f"📥 Webhook '{evento}' enfileirado ({doc_ref.id})")
    return item


def enviar_ou_enfileirar(db: firestore.client, evento: str, payload: Dict, url: Optional[str]) -> bool:
    """Tenta a entrega direta; se falhar, o evento vai para a fila. Retorna True se entregue."""
    try:
        webhook_service.enviar_webhook(url, payload)
        return True
    except WebhookError as e:
        logger.warning(f"⚠️ Envio direto de '{evento}' falhou ({e.message}), usando a fila")
        enfileirar_webhook(db, evento, payload)
        return False


def _destinos(db: firestore.client, evento: str) -> List[Dict]:
    destinos = []
    query = db.collection(WEBHOOKS) \
        .where('ativo', '==', True) \
        .where('eventos', 'array_contains', evento)
    for doc in query.stream():
        webhook = doc.to_dict()
        destinos.append({'url': webhook.get('url'), 'headers': webhook.get('headers') or {}})

    if not destinos and evento in EVENTOS_WHATSAPP and webhook_service.WHATSAPP_WEBHOOK_URL:
        destinos.append({'url': webhook_service.WHATSAPP_WEBHOOK_URL, 'headers': {}})
    return destinos


def _itens_vencidos(db: firestore.client) -> List[Dict]:
    agora = agora_utc()
    itens = []
    for doc in db.collection(FILA_WEBHOOKS).where('status', '==', 'pendente').stream():
        item = doc.to_dict()
        item['id'] = doc.id
        proximo = parse_datetime(item.get('proximo_retry'))
        if proximo is None or proximo <= agora:
            itens.append(item)
    itens.sort(key=lambda i: parse_datetime(i.get('created_at')) or agora)
    return itens[:LIMITE_LOTE]


def _entregar(item: Dict, destinos: List[Dict], entregues: List[str]) -> List[str]:
    """Envia aos destinos que ainda não receberam o item; devolve os erros."""
    erros = []
    for destino in destinos:
        if destino['url'] in entregues:
            continue
        try:
            webhook_service.enviar_webhook(destino['url'], item.get('payload') or {}, destino['headers'])
            entregues.append(destino['url'])
        except WebhookError as e:
            erros.append(f"{destino['url']}: {e.message}")
    return erros


def processar_fila_webhooks(db: firestore.client) -> Dict:
    """
    Entrega os webhooks pendentes cujo proximo_retry já passou.

    Cada item é enviado a todos os webhooks ativos inscritos no evento; eventos
    de WhatsApp sem assinante vão para WHATSAPP_WEBHOOK_URL. As URLs que já
    receberam o item ficam em 'entregues' e não recebem de novo. Em falha o item
    volta para 'pendente' com espera de 2^tentativas minutos, até virar 'erro'.
    """
    itens = _itens_vencidos(db)
    processados, falhas = 0, 0

    for item in itens:
        item_ref = db.collection(FILA_WEBHOOKS).document(item['id'])
        item_ref.update({'status': 'processando', 'updated_at': firestore.SERVER_TIMESTAMP})
        entregues = list(item.get('entregues') or [])

        try:
            destinos = _destinos(db, item['evento'])
            if not destinos:
                falhas += 1
                item_ref.update({
                    'status': 'erro',
                    'erro': f"Nenhum webhook ativo para o evento {item['evento']}",
                    'updated_at': firestore.SERVER_TIMESTAMP,
                })
                logger.warning(f"⚠️ Nenhum destino para o webhook {item['id']} ({item['evento']})")
                continue
            erros = _entregar(item, destinos, entregues)
        except Exception as e:
            logger.error(f"❌ Erro inesperado ao processar o webhook {item['id']}: {e}")
            erros = [f"Erro inesperado: {e}"]

        if not erros:
            processados += 1
            item_ref.update({
                'status': 'processado',
                'entregues': entregues,
                'processado_em': agora_utc(),
                'erro': None,
                'updated_at': firestore.SERVER_TIMESTAMP,
            })
            continue

        falhas += 1
        tentativas = item.get('tentativas', 0) + 1
        esgotou = tentativas >= item.get('max_tentativas', 3)
        item_ref.update({
            'status': 'erro' if esgotou else 'pendente',
            'entregues': entregues,
            'tentativas': tentativas,
            'erro': '; '.join(erros),
            'proximo_retry': None if esgotou else agora_utc() + timedelta(minutes=2 ** tentativas),
            'updated_at': firestore.SERVER_TIMESTAMP,
        })
        logger.error(f"❌ Webhook {item['id']} falhou (tentativa {tentativas}): {'; '.join(erros)}")

    logger.info(f"📊 Fila de webhooks: {processados} processados, {falhas} falhas")
    return {'success': True, 'processed': len(itens), 'delivered': processados, 'failed': falhas}


def reenviar_webhook(db: firestore.client, item_id: str) -> Optional[Dict]:
    """Coloca uma cópia do item na fila, com as tentativas zeradas."""
    item = buscar_documento(db, FILA_WEBHOOKS, item_id)
    if not item:
        return None
    return enfileirar_webhook(db, item['evento'], item.get('payload') or {})


def listar_fila_webhooks(db: firestore.client, limite: int = 100) -> List[Dict]:
    query = db.collection(FILA_WEBHOOKS) \
        .order_by('created_at', direction=firestore.Query.DESCENDING) \
        .limit(limite)
    itens = []
    for doc in query.stream():
        item = doc.to_dict()
        item['id'] = doc.id
        itens.append(item)
    return itens


# =================================================================================
# CADASTRO DE WEBHOOKS
# =================================================================================

def listar_webhooks(db: firestore.client) -> List[Dict]:
    webhooks = []
    for doc in db.collection(WEBHOOKS).order_by('created_at', direction=firestore.Query.DESCENDING).stream():
        webhook = doc.to_dict()
        webhook['id'] = doc.id
        webhooks.append(webhook)
    return webhooks


def criar_webhook(db: firestore.client, webhook_data: schemas.WebhookCreate) -> Dict:
    webhook_dict = webhook_data.model_dump()
    doc_ref = db.collection(WEBHOOKS).document()
    doc_ref.set(add_timestamps(webhook_dict))
    webhook_dict['id'] = doc_ref.id
    logger.info(f"Webhook {doc_ref.id} cadastrado para {webhook_dict['url']}")
    return webhook_dict


def atualizar_webhook(db: firestore.client, webhook_id: str, update_data: schemas.WebhookUpdate) -> Optional[Dict]:
    webhook_ref = db.collection(WEBHOOKS).document(webhook_id)
    if not webhook_ref.get().exists:
        return None
    webhook_ref.update(add_timestamps(update_data.model_dump(exclude_unset=True), is_update=True))
    return buscar_documento(db, WEBHOOKS, webhook_id)


def deletar_webhook(db: firestore.client, webhook_id: str) -> bool:
    webhook_ref = db.collection(WEBHOOKS).document(webhook_id)
    if not webhook_ref.get().exists:
        return False
    webhook_ref.delete()
    logger.info(f"Webhook {webhook_id} removido")
    return True


def testar_webhook(db: firestore.client, webhook_id: str) -> Dict:
    """Envia um payload de teste direto para a URL do webhook."""
    webhook = buscar_documento(db, WEBHOOKS, webhook_id)
    if not webhook:
        raise ValueError('Webhook não encontrado')

    payload = webhook_service.montar_payload('webhook_test', {
        'test': True,
        'webhook_id': webhook_id,
        'message': 'Teste direto da interface',
        'url_destino': webhook['url'],
    })
    try:
        status_code = webhook_service.enviar_webhook(webhook['url'], payload, webhook.get('headers') or {})
        return {'sent': True, 'status_code': status_code}
    except WebhookError as e:
        return {'sent': False, 'status_code': e.status_code or 0, 'error_info': e.message}
