# routers/notifications.py
"""
Router para notificações push (tokens FCM, fila e histórico de envios)
"""

from fastapi import APIRouter, Depends, HTTPException, status
import schemas
import crud
from database import get_db
from auth import get_current_user_firebase, get_current_staff_user
from firebase_admin import firestore

router = APIRouter(tags=["Notificações"])


@router.post("/me/register-fcm-token", status_code=status.HTTP_200_OK)
def registrar_fcm_token(
    token_data: schemas.FCMTokenUpdate,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    """Registra um token FCM para o usuário autenticado."""
    if not crud.adicionar_fcm_token(db, current_user.firebase_uid, token_data.fcm_token):
        raise HTTPException(status_code=404, detail="Usuário não encontrado")
    return {"message": "Token FCM registrado com sucesso"}


@router.post("/me/remove-fcm-token", status_code=status.HTTP_200_OK)
def remover_fcm_token(
    token_data: schemas.FCMTokenUpdate,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    if not crud.remover_fcm_token(db, current_user.firebase_uid, token_data.fcm_token):
        raise HTTPException(status_code=404, detail="Usuário não encontrado")
    return {"message": "Token FCM removido com sucesso"}


@router.post("/notificacoes/push", status_code=status.HTTP_201_CREATED)
def enfileirar_push(
    notificacao: schemas.PushNotificationCreate,
    current_user: schemas.UsuarioProfile = Depends(get_current_staff_user),
    db: firestore.client = Depends(get_db)
):
    """Coloca uma notificação na fila; o envio acontece em /tasks/processar-fila-push."""
    return crud.enfileirar_notificacao_push(
        db,
        user_id=notificacao.user_id,
        title=notificacao.title,
        body=notificacao.body,
        event_type=notificacao.event_type,
        event_id=notificacao.event_id,
        data=notificacao.data,
        max_attempts=notificacao.max_attempts,
    )


@router.get("/notificacoes/push/logs")
def listar_meus_logs_push(
    limite: int = 50,
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase),
    db: firestore.client = Depends(get_db)
):
    return crud.listar_logs_push(db, current_user.id, limite)
