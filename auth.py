# auth.py

import os
import logging
from fastapi import Depends, HTTPException, status, Header
from fastapi.security import OAuth2PasswordBearer
from firebase_admin import auth
import schemas
import crud
from database import get_db
from typing import Optional

logger = logging.getLogger(__name__)

# auto_error=False para que a ausência de token vire 401 com mensagem própria
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="token", auto_error=False)


def get_current_user_firebase(token: str = Depends(oauth2_scheme), db = Depends(get_db)) -> schemas.UsuarioProfile:
    """
    Decodifica o ID Token do Firebase, busca a pessoa vinculada ao uid
    e retorna seu perfil como um schema Pydantic.
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de autenticação não fornecido."
        )
    try:
        decoded_token = auth.verify_id_token(token)
        firebase_uid = decoded_token['uid']
    except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token inválido ou expirado: {e}"
        )

    pessoa = crud.buscar_usuario_por_firebase_uid(db, firebase_uid=firebase_uid)
    if not pessoa:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Perfil de usuário não encontrado em nosso sistema."
        )

    return schemas.UsuarioProfile(**pessoa)


def _exigir_role(current_user: schemas.UsuarioProfile, roles, mensagem: str) -> schemas.UsuarioProfile:
    if current_user.role not in roles:
        logger.warning(f"Acesso negado para {current_user.id} (role={current_user.role})")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=mensagem)
    return current_user


def get_current_admin_user(
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase)
) -> schemas.UsuarioProfile:
    """Somente administradores da clínica."""
    return _exigir_role(current_user, ('admin',), "Acesso negado: esta operação requer perfil de administrador.")


def get_current_staff_user(
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase)
) -> schemas.UsuarioProfile:
    """Administradores e secretaria (operações financeiras e de cadastro)."""
    return _exigir_role(
        current_user, ('admin', 'secretaria'),
        "Acesso negado: esta operação requer perfil de administrador ou secretaria."
    )


def get_current_profissional_user(
    current_user: schemas.UsuarioProfile = Depends(get_current_user_firebase)
) -> schemas.UsuarioProfile:
    return _exigir_role(
        current_user, ('admin', 'secretaria', 'profissional'),
        "Acesso negado: você não faz parte da equipe da clínica."
    )


def validate_cron_secret(x_cron_secret: Optional[str] = Header(None)):
    """
    Protege os endpoints chamados pelo agendador (Cloud Scheduler).
    Só é exigido quando CRON_SECRET está definido no ambiente.
    """
    esperado = os.getenv("CRON_SECRET")
    if esperado and x_cron_secret != esperado:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Cron secret inválido."
        )
    return True
