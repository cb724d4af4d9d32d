# database.py (Firestore)

import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud import secretmanager
import json
import logging
import os

logger = logging.getLogger(__name__)

# Instância global do cliente do Firestore
db_client = None


def _carregar_credenciais_secret_manager(project_id: str, secret_id: str):
    """Lê o JSON da conta de serviço armazenado no Secret Manager."""
    client = secretmanager.SecretManagerServiceClient()
    name = f"projects/{project_id}/secrets/{secret_id}/versions/latest"
    response = client.access_secret_version(request={"name": name})
    payload = response.payload.data.decode("UTF-8")
    return json.loads(payload)


def initialize_firebase_app():
    """
    Inicializa o Firebase Admin SDK e o cliente do Firestore.

    Se FIREBASE_CREDENTIALS_SECRET estiver definido, a chave de serviço é lida do
    Secret Manager; caso contrário, usa as credenciais padrão do ambiente
    (GOOGLE_APPLICATION_CREDENTIALS ou a conta de serviço do Cloud Run).
    """
    global db_client
    if not firebase_admin._apps:
        project_id = os.getenv("GCP_PROJECT_ID", "respira-kids")
        secret_id = os.getenv("FIREBASE_CREDENTIALS_SECRET")
        try:
            logger.info("Inicializando Firebase Admin SDK...")
            if secret_id:
                cred = credentials.Certificate(_carregar_credenciais_secret_manager(project_id, secret_id))
            else:
                cred = credentials.ApplicationDefault()
            firebase_admin.initialize_app(cred, {'projectId': project_id})
            logger.info("Firebase Admin SDK inicializado com sucesso.")
        except Exception as e:
            logger.error(f"ERRO CRÍTICO ao inicializar o Firebase: {e}")
            raise

    db_client = firestore.client()
    logger.info("Cliente do Firestore inicializado.")


def get_db():
    """Dependência do FastAPI que fornece o cliente do Firestore."""
    if db_client is None:
        raise RuntimeError("Cliente do Firestore não foi inicializado. Chame initialize_firebase_app() no startup.")
    yield db_client
