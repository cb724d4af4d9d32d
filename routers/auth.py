# routers/auth.py
"""
Router para autenticação e gestão de usuários
"""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from typing import List
import schemas
import crud
from database import get_db
from auth import get_current_user_firebase, get_current_admin_user, get_current_profissional_user
from firebase_admin import firestore, auth
import logging

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Usuários"])


@router.post("/users/sync-profile", response_model=schemas.UsuarioProfile)
def sync_profile(
    user_data: schemas.UsuarioSync,
    db: firestore.client = Depends(get_db),
    token: str = Depends(oauth2_scheme)
):
    """
    Vincula o login Firebase à pessoa cadastrada na clínica com o mesmo email.
    Logins sem cadastro prévio são recusados.
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de autenticação não fornecido."
        )
    try:
        decoded_token = auth.verify_id_token(token)
    except (ValueError, auth.InvalidIdTokenError, auth.RevokedIdTokenError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token inválido ou expirado: {e}"
        )

    if decoded_token['uid'] != user_data.firebase_uid:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Firebase UID no token não corresponde aos dados enviados."
        )

    # O vínculo usa apenas o email verificado do token, nunca o do corpo
    email_token = (decoded_token.get('email') or '').strip().lower()
    if not email_token or not decoded_token.get('email_verified'):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="O email do login precisa estar verificado."
        )
    if user_data.email.strip().lower() != email_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Email no token não corresponde aos dados enviados."
        )

    try:
        usuario = crud.sincronizar_usuario(db, user_data.firebase_uid, email_token)
    except ValueError as ve:
        logger.warning(f"Erro de validação na sincronização: {ve}")
        raise HTTPException(status_code=400, detail=str(ve))

    logger.info(f"Perfil sincronizado para {usuario.get('email', 'N/A')}")
    return usuario


@router.get("/me/profile", response_model=schemas.UsuarioProfile)
def get_my_profile(current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase)):
    return current_user


@router.patch("/admin/usuarios/{pessoa_id}/role", response_model=schemas.UsuarioProfile)
def alterar_role_usuario(
    pessoa_id: str,
    role_data: schemas.RoleUpdate,
    admin: schemas.UsuarioProfile = Depends(get_current_admin_user),
    db: firestore.client = Depends(get_db)
):
    """Define o papel (admin, secretaria, profissional) de uma pessoa da clínica."""
    try:
        pessoa = crud.atualizar_role_usuario(db, pessoa_id, role_data.role)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve))
    if not pessoa:
        raise HTTPException(status_code=404, detail="Pessoa não encontrada.")
    return pessoa


@router.get("/profissionais")
def listar_profissionais(
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
) -> List[dict]:
    return crud.listar_profissionais(db)


@router.get("/tipos-servico")
def listar_tipos_servico(
    current_user: schemas.UsuarioProfile = Depends(get_current_profissional_user),
    db: firestore.client = Depends(get_db)
) -> List[dict]:
    return crud.listar_tipos_servico(db)
