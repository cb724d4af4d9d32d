# respira-kids-backend/main.py

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
import crud
import logging
from database import initialize_firebase_app, get_db
from auth import validate_cron_secret
from firebase_admin import firestore
from routers import (
    auth as auth_router,
    agendamentos,
    asaas,
    faturas,
    comissoes,
    produtos,
    notifications,
    webhooks,
    whatsapp,
    registro_publico,
    google,
    ai,
)

VERSAO = "1.0.0"

# --- Configuração da Aplicação ---
app = FastAPI(
    title="API Respira Kids",
    description="Backend da clínica Respira Kids: agenda, faturamento ASAAS, cadastro público e integrações.",
    version=VERSAO
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# --- Evento de Startup ---
@app.on_event("startup")
def startup_event():
    """Inicializa a conexão com o Firebase ao iniciar a aplicação."""
    initialize_firebase_app()


# --- Routers ---
app.include_router(auth_router.router)
app.include_router(agendamentos.router)
app.include_router(asaas.router)
app.include_router(faturas.router)
app.include_router(comissoes.router)
app.include_router(produtos.router)
app.include_router(notifications.router)
app.include_router(webhooks.router)
app.include_router(whatsapp.router)
app.include_router(registro_publico.router)
app.include_router(google.router)
app.include_router(ai.router)


# --- Endpoint Raiz ---
@app.get("/")
def root():
    return {"mensagem": "API Respira Kids funcionando", "versao": VERSAO}


# =================================================================================
# JOBS AGENDADOS (CLOUD SCHEDULER)
# =================================================================================

@app.post("/tasks/processar-fila-push", tags=["Jobs Agendados"])
def processar_fila_push(
    autorizado: bool = Depends(validate_cron_secret),
    db: firestore.client = Depends(get_db)
):
    """Envia as notificações push pendentes (lotes de 50, com retentativa)."""
    logger.info("[SCHEDULER] Processando fila de notificações push")
    return crud.processar_fila_push(db)


@app.post("/tasks/processar-fila-webhooks", tags=["Jobs Agendados"])
def processar_fila_webhooks(
    autorizado: bool = Depends(validate_cron_secret),
    db: firestore.client = Depends(get_db)
):
    """Entrega os webhooks pendentes cujo próximo retry já venceu."""
    logger.info("[SCHEDULER] Processando fila de webhooks")
    return crud.processar_fila_webhooks(db)
