# crypto_utils.py

import os
import base64
import logging
from google.cloud import kms
from cryptography.fernet import Fernet

logger = logging.getLogger(__name__)

kms_client = None
fernet_instance = None


def _initialize_crypto():
    """
    Cria a instância do Fernet usada para criptografar os tokens OAuth salvos no Firestore.

    A chave vem de FERNET_KEY quando definida. Sem ela, a chave de dados cifrada em
    FERNET_KEY_CIPHERTEXT (base64) é aberta pelo Cloud KMS com a chave KMS_CRYPTO_KEY_NAME.
    """
    global kms_client, fernet_instance
    if fernet_instance:
        return

    chave_local = os.getenv("FERNET_KEY")
    if chave_local:
        fernet_instance = Fernet(chave_local.encode('utf-8'))
        logger.info("Módulo de criptografia inicializado com FERNET_KEY.")
        return

    key_resource_name = os.getenv("KMS_CRYPTO_KEY_NAME")
    chave_cifrada = os.getenv("FERNET_KEY_CIPHERTEXT")
    if not key_resource_name or not chave_cifrada:
        raise ValueError("Defina FERNET_KEY ou KMS_CRYPTO_KEY_NAME e FERNET_KEY_CIPHERTEXT para habilitar a criptografia.")

    try:
        kms_client = kms.KeyManagementServiceClient()
        response = kms_client.decrypt(
            request={"name": key_resource_name, "ciphertext": base64.b64decode(chave_cifrada)}
        )
        fernet_instance = Fernet(base64.urlsafe_b64encode(response.plaintext))
        logger.info("✅ Módulo de criptografia inicializado via KMS.")
    except Exception as e:
        logger.error(f"❌ ERRO CRÍTICO ao inicializar o módulo de criptografia: {e}")
        raise


def encrypt_data(data: str) -> str:
    """Criptografa um texto usando a chave gerenciada."""
    if fernet_instance is None:
        _initialize_crypto()

    if not isinstance(data, str):
        raise TypeError("Apenas strings podem ser criptografadas.")

    return fernet_instance.encrypt(data.encode('utf-8')).decode('utf-8')


def decrypt_data(encrypted_data: str) -> str:
    """Descriptografa um texto usando a chave gerenciada."""
    if fernet_instance is None:
        _initialize_crypto()

    if not isinstance(encrypted_data, str):
        raise TypeError("Apenas strings podem ser descriptografadas.")

    return fernet_instance.decrypt(encrypted_data.encode('utf-8')).decode('utf-8')
