# crud/notifications.py
"""
Tokens FCM e fila de notificações push
"""

import logging
from datetime import timedelta
from typing import Optional, List, Dict
from firebase_admin import firestore, messaging
from crud.utils import add_timestamps, agora_utc, parse_datetime

logger = logging.getLogger(__name__)

FILA_PUSH = 'push_notification_queue'
LOGS_PUSH = 'push_notification_logs'
LIMITE_LOTE = 50
ATRASO_RETENTATIVA = timedelta(minutes=5)
ICONE_PUSH = '/images/logos/icone-respira-kids.png'


def _buscar_pessoa_por_uid(db: firestore.client, firebase_uid: str):
    docs = list(db.collection('pessoas').where('firebase_uid', '==', firebase_uid).limit(1).stream())
    return docs[0] if docs else None


def adicionar_fcm_token(db: firestore.client, firebase_uid: str, fcm_token: str) -> bool:
    """Adiciona um token FCM à pessoa logada."""
    pessoa_doc = _buscar_pessoa_por_uid(db, firebase_uid)
    if not pessoa_doc:
        logger.warning(f"Pessoa com firebase_uid {firebase_uid} não encontrada")
        return False

    fcm_tokens = pessoa_doc.to_dict().get('fcm_tokens', [])
    if fcm_token in fcm_tokens:
        logger.info(f"Token FCM já existe para usuário {firebase_uid}")
        return True

    pessoa_doc.reference.update({'fcm_tokens': fcm_tokens + [fcm_token]})
    logger.info(f"Token FCM adicionado para usuário {firebase_uid}")
    return True


def remover_fcm_token(db: firestore.client, firebase_uid: str, fcm_token: str) -> bool:
    """Remove um token FCM da pessoa logada."""
    pessoa_doc = _buscar_pessoa_por_uid(db, firebase_uid)
    if not pessoa_doc:
        logger.warning(f"Pessoa com firebase_uid {firebase_uid} não encontrada")
        return False

    fcm_tokens = pessoa_doc.to_dict().get('fcm_tokens', [])
    if fcm_token in fcm_tokens:
        pessoa_doc.reference.update({'fcm_tokens': [t for t in fcm_tokens if t != fcm_token]})
        logger.info(f"Token FCM removido para usuário {firebase_uid}")
    return True


def enfileirar_notificacao_push(
    db: firestore.client,
    user_id: str,
    title: str,
    body: str,
    event_type: str,
    event_id: Optional[str] = None,
    data: Optional[Dict] = None,
    max_attempts: int = 3,
) -> Dict:
    """Coloca uma notificação na fila; o envio acontece em processar_fila_push."""
    notificacao = {
        'user_id': user_id,
        'title': title,
        'body': body,
        'data': data or {},
        'event_type': event_type,
        'event_id': event_id,
        'status': 'pending',
        'attempts': 0,
        'max_attempts': max_attempts,
        'next_retry_at': agora_utc(),
        'error_message': None,
        'sent_at': None,
    }

    doc_ref = db.collection(FILA_PUSH).document()
    doc_ref.set(add_timestamps(notificacao))
    notificacao['id'] = doc_ref.id

    logger.info(f"🔔 Notificação {doc_ref.id} ({event_type}) enfileirada para {user_id}")
    return notificacao


def _montar_mensagem(notificacao: Dict, token: str) -> messaging.Message:
    dados = {str(k): str(v) for k, v in (notificacao.get('data') or {}).items()}
    dados.update({
        'notification_id': notificacao['id'],
        'event_type': notificacao.get('event_type') or '',
        'event_id': notificacao.get('event_id') or '',
    })

    return messaging.Message(
        token=token,
        notification=messaging.Notification(title=notificacao.get('title'), body=notificacao.get('body')),
        data=dados,
        webpush=messaging.WebpushConfig(
            notification=messaging.WebpushNotification(
                icon=ICONE_PUSH,
                badge=ICONE_PUSH,
                tag=notificacao.get('event_type'),
                require_interaction=False,
                vibrate=[200, 100, 200],
            )
        ),
        android=messaging.AndroidConfig(priority='high', ttl=timedelta(seconds=86400)),
    )


def _enviar_notificacao(db: firestore.client, notificacao: Dict) -> Dict:
    """Envia para todos os tokens da pessoa; basta um envio aceito para contar como sucesso."""
    pessoa_doc = db.collection('pessoas').document(notificacao.get('user_id') or '_').get()
    tokens = pessoa_doc.to_dict().get('fcm_tokens', []) if pessoa_doc.exists else []

    if not tokens:
        return {'success': False, 'notification_id': notificacao['id'],
                'error': 'Usuário não possui tokens FCM registrados'}

    erros = []
    enviados = 0
    for token in tokens:
        try:
            messaging.send(_montar_mensagem(notificacao, token))
            enviados += 1
        except Exception as e:
            logger.error(f"❌ Erro ao enviar FCM para token {token[:10]}...: {e}")
            erros.append(str(e))

    if enviados:
        return {'success': True, 'notification_id': notificacao['id'], 'tokens': tokens}
    return {'success': False, 'notification_id': notificacao['id'], 'tokens': tokens,
            'error': erros[-1] if erros else 'Erro ao enviar via FCM'}


def _registrar_log(db: firestore.client, notificacao: Dict, resultado: Dict):
    log = {
        'user_id': notificacao.get('user_id'),
        'tokens': resultado.get('tokens', []),
        'title': notificacao.get('title'),
        'body': notificacao.get('body'),
        'data': notificacao.get('data'),
        'event_type': notificacao.get('event_type'),
        'event_id': notificacao.get('event_id'),
        'success': resultado['success'],
    }
    if resultado['success']:
        log['response_data'] = {'sent': True}
    else:
        log['error_message'] = resultado.get('error')
    db.collection(LOGS_PUSH).document().set(add_timestamps(log))


def _notificacoes_pendentes(db: firestore.client) -> List[Dict]:
    agora = agora_utc()
    pendentes = []
    for doc in db.collection(FILA_PUSH).where('status', '==', 'pending').stream():
        notificacao = doc.to_dict()
        notificacao['id'] = doc.id
        proximo = parse_datetime(notificacao.get('next_retry_at'))
        if proximo and proximo > agora:
            continue
        if notificacao.get('attempts', 0) >= notificacao.get('max_attempts', 3):
            continue
        pendentes.append(notificacao)

    pendentes.sort(key=lambda n: parse_datetime(n.get('created_at')) or agora)
    return pendentes[:LIMITE_LOTE]


def processar_fila_push(db: firestore.client) -> Dict:
    """
    Processa as notificações pendentes da fila.

    Cada notificação vencida é enviada aos tokens FCM do destinatário. Falhas
    voltam para a fila com nova tentativa em 5 minutos até esgotar max_attempts,
    quando passam a 'failed'. Todo envio gera um registro em push_notification_logs.
    """
    logger.info("🔔 Processando fila de notificações push...")
    notificacoes = _notificacoes_pendentes(db)

    if not notificacoes:
        logger.info("✅ Nenhuma notificação pendente")
        return {'success': True, 'message': 'Nenhuma notificação pendente', 'processed': 0,
                'sent': 0, 'failed': 0, 'results': []}

    logger.info(f"📨 Encontradas {len(notificacoes)} notificações para enviar")
    results = []

    for notificacao in notificacoes:
        notif_ref = db.collection(FILA_PUSH).document(notificacao['id'])
        try:
            resultado = _enviar_notificacao(db, notificacao)
            results.append({k: v for k, v in resultado.items() if k != 'tokens'})

            if resultado['success']:
                notif_ref.update({
                    'status': 'sent',
                    'sent_at': agora_utc(),
                    'updated_at': firestore.SERVER_TIMESTAMP,
                })
                logger.info(f"✅ Notificação {notificacao['id']} enviada com sucesso")
            else:
                tentativas = notificacao.get('attempts', 0) + 1
                esgotou = tentativas >= notificacao.get('max_attempts', 3)
                notif_ref.update({
                    'status': 'failed' if esgotou else 'pending',
                    'attempts': tentativas,
                    'error_message': resultado.get('error'),
                    'next_retry_at': None if esgotou else agora_utc() + ATRASO_RETENTATIVA,
                    'updated_at': firestore.SERVER_TIMESTAMP,
                })
                logger.error(f"❌ Falha ao enviar notificação {notificacao['id']}: {resultado.get('error')}")

            _registrar_log(db, notificacao, resultado)

        except Exception as e:
            logger.error(f"❌ Erro ao processar notificação {notificacao['id']}: {e}")
            notif_ref.update({
                'status': 'failed',
                'error_message': str(e) or 'Erro desconhecido',
                'updated_at': firestore.SERVER_TIMESTAMP,
            })

    enviados = len([r for r in results if r['success']])
    falhas = len([r for r in results if not r['success']])
    logger.info(f"📊 Processamento concluído: {enviados} sucesso, {falhas} falhas")

    return {
        'success': True,
        'processed': len(notificacoes),
        'sent': enviados,
        'failed': falhas,
        'results': results,
    }


def listar_logs_push(db: firestore.client, user_id: str, limite: int = 50) -> List[Dict]:
    """Histórico de envios de um usuário, mais recentes primeiro."""
    query = db.collection(LOGS_PUSH) \
        .where('user_id', '==', user_id) \
        .order_by('created_at', direction=firestore.Query.DESCENDING) \
        .limit(limite)

    logs = []
    for doc in query.stream():
        log = doc.to_dict()
        log['id'] = doc.id
        logs.append(log)
    return logs
