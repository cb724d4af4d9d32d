# crud/usuarios.py
"""
Usuários do sistema (pessoas com login Firebase) e seus papéis
"""

import logging
from typing import Optional, Dict, List
from firebase_admin import firestore
from crud.utils import add_timestamps

logger = logging.getLogger(__name__)

ROLES = ('admin', 'secretaria', 'profissional')
ROLE_PRIORITY = {
    'admin': 3,
    'secretaria': 2,
    'profissional': 1,
}


def buscar_usuario_por_firebase_uid(db: firestore.client, firebase_uid: str) -> Optional[Dict]:
    """
    Busca a pessoa vinculada ao firebase_uid.

    Se houver mais de uma pessoa ativa com o mesmo uid, retorna a de maior
    privilégio (admin > secretaria > profissional).
    """
    docs = list(db.collection('pessoas').where('firebase_uid', '==', firebase_uid).stream())
    if not docs:
        return None

    pessoas = []
    for doc in docs:
        pessoa = doc.to_dict()
        pessoa['id'] = doc.id
        if pessoa.get('ativo', True):
            pessoas.append(pessoa)

    if not pessoas:
        return None
    if len(pessoas) > 1:
        logger.warning(f"DUPLICAÇÃO DETECTADA: {len(pessoas)} pessoas com firebase_uid {firebase_uid}")

    return max(pessoas, key=lambda p: ROLE_PRIORITY.get(p.get('role'), 0))


def sincronizar_usuario(db: firestore.client, firebase_uid: str, email: str) -> Dict:
    """
    Vincula o login Firebase à pessoa já cadastrada com o mesmo email.
    O email deve ser o verificado no ID token.
    """
    existente = buscar_usuario_por_firebase_uid(db, firebase_uid)
    if existente:
        return existente

    query = db.collection('pessoas').where('email', '==', email).where('ativo', '==', True).limit(1)
    doc = next(query.stream(), None)
    if not doc:
        raise ValueError("Usuário não cadastrado na clínica.")

    pessoa = doc.to_dict()
    if pessoa.get('firebase_uid') and pessoa['firebase_uid'] != firebase_uid:
        raise ValueError("Este email já está vinculado a outro login.")

    doc.reference.update(add_timestamps({'firebase_uid': firebase_uid}, is_update=True))
    pessoa['firebase_uid'] = firebase_uid
    pessoa['id'] = doc.id
    logger.info(f"Login {firebase_uid} vinculado à pessoa {doc.id}")
    return pessoa


def atualizar_role_usuario(db: firestore.client, pessoa_id: str, role: Optional[str]) -> Optional[Dict]:
    if role is not None and role not in ROLES:
        raise ValueError(f"Papel inválido: {role}")

    pessoa_ref = db.collection('pessoas').document(pessoa_id)
    if not pessoa_ref.get().exists:
        return None

    pessoa_ref.update(add_timestamps({'role': role}, is_update=True))
    logger.info(f"Papel da pessoa {pessoa_id} alterado para {role}")
    pessoa = pessoa_ref.get().to_dict()
    pessoa['id'] = pessoa_id
    return pessoa


def listar_profissionais(db: firestore.client) -> List[Dict]:
    """Pessoas ativas com papel de profissional, usadas nas telas de comissão e agenda."""
    profissionais = []
    for doc in db.collection('pessoas').where('role', '==', 'profissional').where('ativo', '==', True).stream():
        pessoa = doc.to_dict()
        profissionais.append({'id': doc.id, 'nome': pessoa.get('nome'), 'email': pessoa.get('email')})
    profissionais.sort(key=lambda p: p.get('nome') or '')
    return profissionais


def listar_tipos_servico(db: firestore.client) -> List[Dict]:
    servicos = []
    for doc in db.collection('tipo_servicos').where('ativo', '==', True).stream():
        servico = doc.to_dict()
        servicos.append({'id': doc.id, 'nome': servico.get('nome'), 'valor': servico.get('valor')})
    servicos.sort(key=lambda s: s.get('nome') or '')
    return servicos
