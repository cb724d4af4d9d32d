# crud/utils.py
"""
Utilitários e funções auxiliares reutilizáveis
"""

import logging
import re
from datetime import datetime, timezone
from zoneinfo import ZoneInfo
from typing import Optional, Dict, List
from firebase_admin import firestore
from crypto_utils import encrypt_data, decrypt_data

logger = logging.getLogger(__name__)

JID_SUFFIX = '@s.whatsapp.net'
FUSO_CLINICA = ZoneInfo('America/Sao_Paulo')


def agora_utc() -> datetime:
    return datetime.now(timezone.utc)


def encrypt_sensitive_fields(data: Dict, fields: List[str]) -> Dict:
    """
    Criptografa campos sensíveis de um dicionário.

    Args:
        data: Dicionário com os dados
        fields: Lista de campos para criptografar

    Returns:
        Cópia do dicionário com os campos criptografados
    """
    encrypted_data = data.copy()
    for field in fields:
        valor = encrypted_data.get(field)
        if isinstance(valor, str) and valor.strip():
            encrypted_data[field] = encrypt_data(valor)
    return encrypted_data


def decrypt_sensitive_fields(data: Dict, fields: List[str]) -> Dict:
    """Descriptografa campos sensíveis; um campo ilegível vira None."""
    decrypted_data = data.copy()
    for field in fields:
        valor = decrypted_data.get(field)
        if isinstance(valor, str) and valor.strip():
            try:
                decrypted_data[field] = decrypt_data(valor)
            except Exception as e:
                logger.error(f"Erro ao descriptografar campo {field}: {e}")
                decrypted_data[field] = None
    return decrypted_data


def limpar_digitos(valor: Optional[str]) -> str:
    """Mantém apenas os dígitos de um texto."""
    if not valor:
        return ''
    return re.sub(r'\D', '', str(valor))


def validate_phone_number(telefone: str) -> bool:
    """
    Valida formato básico de telefone brasileiro (DDD + número, com ou sem 55).

    Args:
        telefone: Número de telefone

    Returns:
        True se válido, False caso contrário
    """
    telefone_limpo = limpar_digitos(telefone)
    if telefone_limpo.startswith('55') and len(telefone_limpo) in (12, 13):
        telefone_limpo = telefone_limpo[2:]
    return len(telefone_limpo) in (10, 11)


def normalizar_telefone_br(telefone: str) -> str:
    """Retorna só os dígitos do telefone, com o código do país 55 na frente."""
    telefone_limpo = limpar_digitos(telefone)
    if not telefone_limpo:
        return ''
    if not telefone_limpo.startswith('55'):
        telefone_limpo = f"55{telefone_limpo}"
    return telefone_limpo


def telefone_para_jid(telefone: str) -> str:
    return f"{limpar_digitos(telefone)}{JID_SUFFIX}"


def jid_para_telefone(jid: str) -> str:
    """Converte um JID do WhatsApp (5511999999999@s.whatsapp.net) em telefone."""
    if not jid:
        return ''
    return jid.replace(JID_SUFFIX, '')


def validate_cep(cep: str) -> bool:
    """Valida formato básico de CEP (8 dígitos)."""
    return len(limpar_digitos(cep)) == 8


def formatar_cep(cep: str) -> str:
    cep_limpo = limpar_digitos(cep)
    if len(cep_limpo) != 8:
        return cep
    return f"{cep_limpo[:5]}-{cep_limpo[5:]}"


def add_timestamps(data: Dict, is_update: bool = False) -> Dict:
    """
    Adiciona timestamps aos dados.

    Args:
        data: Dicionário de dados
        is_update: Se True, adiciona updated_at. Se False, adiciona created_at

    Returns:
        Dicionário com timestamps adicionados
    """
    data_with_timestamps = data.copy()

    if is_update:
        data_with_timestamps['updated_at'] = firestore.SERVER_TIMESTAMP
    else:
        data_with_timestamps['created_at'] = firestore.SERVER_TIMESTAMP
        data_with_timestamps['updated_at'] = None

    return data_with_timestamps


def buscar_documento(db: firestore.client, colecao: str, doc_id: Optional[str]) -> Optional[Dict]:
    """Busca um documento pelo ID e devolve seus dados com o campo 'id'."""
    if not doc_id:
        return None
    doc = db.collection(colecao).document(doc_id).get()
    if not doc.exists:
        return None
    dados = doc.to_dict()
    dados['id'] = doc.id
    return dados


def criar_documento(db: firestore.client, colecao: str, dados: Dict) -> Dict:
    """Cria um documento com created_at e devolve os dados com o novo 'id'."""
    doc_ref = db.collection(colecao).document()
    doc_ref.set(add_timestamps(dados))
    resultado = dados.copy()
    resultado['id'] = doc_ref.id
    return resultado


def parse_datetime(valor) -> Optional[datetime]:
    """Aceita datetime ou texto ISO 8601 e devolve um datetime com fuso (UTC se ausente)."""
    if valor is None or valor == '':
        return None
    if isinstance(valor, datetime):
        dt = valor
    else:
        dt = datetime.fromisoformat(str(valor).replace('Z', '+00:00'))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
