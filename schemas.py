# respira-kids-backend/schemas.py

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional, List, Dict, Any, Literal


class CamelModel(BaseModel):
    """Base dos payloads públicos, que chegam em camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =================================================================================
# SCHEMAS DE USUÁRIOS
# =================================================================================

class UsuarioProfile(BaseModel):
    id: str = Field(..., description="ID da pessoa no Firestore.")
    nome: str
    email: Optional[str] = None
    firebase_uid: str
    role: Optional[Literal['admin', 'secretaria', 'profissional']] = Field(None, description="Papel na clínica.")
    ativo: bool = True
    fcm_tokens: List[str] = []
    google_calendar_enabled: bool = False


class UsuarioSync(BaseModel):
    nome: str
    email: EmailStr
    firebase_uid: str


class FCMTokenUpdate(BaseModel):
    fcm_token: str


class RoleUpdate(BaseModel):
    role: Optional[Literal['admin', 'secretaria', 'profissional']] = None


# =================================================================================
# SCHEMAS DE AGENDAMENTOS
# =================================================================================

class AgendamentoCreate(BaseModel):
    paciente_id: str
    profissional_id: str
    tipo_servico_id: str
    data_hora: datetime
    local_id: Optional[str] = None
    valor_servico: Optional[float] = Field(None, ge=0, description="Se ausente, usa o valor do tipo de serviço.")
    empresa_fatura_id: Optional[str] = Field(None, description="Empresa que emite a cobrança.")
    observacao: Optional[str] = None


class AgendamentoUpdate(BaseModel):
    data_hora: Optional[datetime] = None
    status_consulta: Optional[str] = None
    status_pagamento: Optional[str] = None
    possui_evolucao: Optional[Literal['sim', 'nao']] = None
    local_id: Optional[str] = None
    valor_servico: Optional[float] = Field(None, ge=0)
    empresa_fatura_id: Optional[str] = None
    observacao: Optional[str] = None


class AgendamentoCancelamento(BaseModel):
    motivo: Optional[str] = None


class AgendamentoResponse(BaseModel):
    id: str
    paciente_id: str
    paciente_nome: Optional[str] = None
    profissional_id: str
    profissional_nome: Optional[str] = None
    tipo_servico_id: str
    servico_nome: Optional[str] = None
    valor_servico: float = 0
    data_hora: datetime
    status_consulta: str
    status_pagamento: str
    possui_evolucao: str = 'nao'
    responsavel_cobranca_id: Optional[str] = None
    empresa_fatura_id: Optional[str] = None
    fatura_id: Optional[str] = None
    local_id: Optional[str] = None
    observacao: Optional[str] = None
    google_event_id: Optional[str] = None
    ativo: bool = True


# =================================================================================
# SCHEMAS DE FATURAMENTO (ASAAS)
# =================================================================================

class FaturaCreate(BaseModel):
    id_asaas: str = Field(..., description="ID da cobrança no ASAAS.")
    valor_total: float
    descricao: str
    empresa_id: Optional[str] = None
    responsavel_cobranca_id: str
    vencimento: str = Field(..., description="Data de vencimento (YYYY-MM-DD).")
    dados_asaas: Dict[str, Any] = {}
    observacoes: Optional[str] = None
    agendamento_ids: List[str] = []


class FaturaEdicao(BaseModel):
    agendamentos_adicionar: List[str] = []
    agendamentos_remover: List[str] = []
    novo_valor_total: Optional[float] = Field(None, gt=0)
    nova_descricao: Optional[str] = None
    novo_vencimento: Optional[str] = Field(None, description="Nova data de vencimento (YYYY-MM-DD).")


class ProcessarPagamentoRequest(BaseModel):
    consulta_ids: List[str] = Field(..., min_length=1)


class RecebimentoManualRequest(BaseModel):
    valor: Optional[float] = Field(None, gt=0, description="Se ausente, usa o valor total da fatura.")
    data_pagamento: Optional[str] = Field(None, description="YYYY-MM-DD; hoje se ausente.")


class AsaasEmpresaRequest(BaseModel):
    empresa_id: str = Field(..., description="Empresa cuja API key do ASAAS será usada.")


class AsaasClienteRequest(AsaasEmpresaRequest):
    customer: Dict[str, Any]


class AsaasBuscaClienteRequest(AsaasEmpresaRequest):
    cpf_cnpj: str


class AsaasPagamentoRequest(AsaasEmpresaRequest):
    payment: Dict[str, Any]


class AsaasAtualizarPagamentoRequest(AsaasEmpresaRequest):
    payment_id: str
    payment: Dict[str, Any]


class AsaasPagamentoIdRequest(AsaasEmpresaRequest):
    payment_id: str


class AsaasReceberDinheiroRequest(AsaasEmpresaRequest):
    payment_id: str
    valor: float = Field(..., gt=0)
    data_pagamento: str
    notificar_cliente: bool = False


class AsaasNotaFiscalRequest(AsaasEmpresaRequest):
    invoice: Dict[str, Any]


class AsaasAutorizarNotaRequest(AsaasEmpresaRequest):
    invoice_id: str


class AsaasNotificacoesRequest(AsaasEmpresaRequest):
    customer_id: str


class AsaasTokenRequest(BaseModel):
    token: str


class AsaasCriarEmpresaRequest(BaseModel):
    token: str
    razao_social: str
    cnpj: str
    regime_tributario: Optional[str] = None


# =================================================================================
# SCHEMAS DE COMISSÕES
# =================================================================================

class ComissaoBase(BaseModel):
    id_profissional: str
    id_servico: str
    tipo_recebimento: Literal['fixo', 'percentual']
    valor_fixo: Optional[float] = Field(None, ge=0)
    valor_percentual: Optional[float] = Field(None, ge=0, le=100)


class ComissaoCreate(ComissaoBase):
    pass


class ComissaoUpdate(BaseModel):
    id_profissional: Optional[str] = None
    id_servico: Optional[str] = None
    tipo_recebimento: Optional[Literal['fixo', 'percentual']] = None
    valor_fixo: Optional[float] = Field(None, ge=0)
    valor_percentual: Optional[float] = Field(None, ge=0, le=100)


class ComissaoStatusUpdate(BaseModel):
    ativo: bool


class ComissaoCalculoRequest(BaseModel):
    valor_servico: float = Field(..., ge=0)


# =================================================================================
# SCHEMAS DE PRODUTOS
# =================================================================================

class ProdutoRapidoCreate(BaseModel):
    codigo: str = Field(..., min_length=1)
    nome: str = Field(..., min_length=1)
    categoria_contabil_id: Optional[str] = None
    preco_referencia: float = Field(0, ge=0)


class ProdutoSugestaoRequest(BaseModel):
    descricao: str
    categoria_id: Optional[str] = None


# =================================================================================
# SCHEMAS DE NOTIFICAÇÕES PUSH
# =================================================================================

class PushNotificationCreate(BaseModel):
    user_id: str
    title: str
    body: str
    event_type: str
    event_id: Optional[str] = None
    data: Dict[str, Any] = {}
    max_attempts: int = Field(3, ge=1)


# =================================================================================
# SCHEMAS DE WEBHOOKS
# =================================================================================

class WebhookCreate(BaseModel):
    url: str
    eventos: List[str] = Field(..., min_length=1)
    ativo: bool = True
    headers: Dict[str, str] = {}

    @field_validator('url')
    @classmethod
    def url_https(cls, v: str) -> str:
        if not v.startswith('https://'):
            raise ValueError('A URL do webhook deve usar https')
        return v


class WebhookUpdate(BaseModel):
    url: Optional[str] = None
    eventos: Optional[List[str]] = Field(None, min_length=1)
    ativo: Optional[bool] = None
    headers: Optional[Dict[str, str]] = None

    @field_validator('url')
    @classmethod
    def url_https(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith('https://'):
            raise ValueError('A URL do webhook deve usar https')
        return v


class WebhookEnfileirar(BaseModel):
    evento: str
    payload: Dict[str, Any]


# =================================================================================
# SCHEMAS PÚBLICOS (CADASTRO E WHATSAPP)
# =================================================================================

class WhatsAppCodigoRequest(CamelModel):
    action: str
    whatsapp_jid: str
    code: Optional[str] = None


class RegistroEventoLog(CamelModel):
    session_id: str
    event_type: Literal['step_started', 'step_completed', 'validation_error', 'api_error', 'success']
    step_name: Optional[str] = None
    form_data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    error_stack: Optional[str] = None
    user_agent: Optional[str] = None
    browser_info: Optional[Dict[str, Any]] = None


class EnderecoCadastro(CamelModel):
    cep: str
    logradouro: str
    bairro: str
    cidade: str
    estado: str
    numero: str
    complemento: Optional[str] = None


class ResponsavelLegalCadastro(CamelModel):
    nome: str
    cpf: str
    email: str


class NovaPessoaCadastro(CamelModel):
    cpf: str
    nome: str
    email: str
    whatsapp: str
    whatsapp_jid: Optional[str] = None


class PacienteCadastro(CamelModel):
    nome: str
    data_nascimento: str = Field(..., description="Data ISO (YYYY-MM-DD).")
    sexo: Literal['M', 'F']
    cpf: Optional[str] = None


class PediatraCadastro(CamelModel):
    id: Optional[str] = None
    nome: str
    crm: Optional[str] = None


class AutorizacoesCadastro(CamelModel):
    uso_cientifico: bool = False
    uso_redes_sociais: bool = False
    uso_nome: bool = False


class FinalizacaoCadastro(CamelModel):
    whatsapp_jid: Optional[str] = None
    phone_number: Optional[str] = None
    existing_person_id: Optional[str] = None
    existing_user_data: Optional[Dict[str, Any]] = None
    responsavel_legal: Optional[ResponsavelLegalCadastro] = None
    endereco: EnderecoCadastro
    responsavel_financeiro_mesmo_que_legal: bool = True
    responsavel_financeiro_existing_id: Optional[str] = None
    new_person_data: Optional[NovaPessoaCadastro] = None
    paciente: PacienteCadastro
    pediatra: PediatraCadastro
    autorizacoes: AutorizacoesCadastro = AutorizacoesCadastro()
    contract_variables: Dict[str, str] = {}


class FinalizacaoCadastroRequest(CamelModel):
    action: str
    data: FinalizacaoCadastro


class ResponsavelFinanceiroDados(CamelModel):
    is_self: bool
    phone: Optional[str] = None
    nome: Optional[str] = None
    cpf: Optional[str] = None
    email: Optional[str] = None
    endereco: Optional[EnderecoCadastro] = None
    use_same_address: bool = False


class AdicionarResponsavelFinanceiro(CamelModel):
    responsible_phone: str
    patient_ids: List[str]
    financial_responsible: ResponsavelFinanceiroDados


# =================================================================================
# SCHEMAS DE INTEGRAÇÕES (GOOGLE E IA)
# =================================================================================

class GoogleCallbackRequest(CamelModel):
    code: str
    user_id: str


class GoogleSyncRequest(BaseModel):
    operation: Literal['INSERT', 'UPDATE', 'DELETE']
    agendamento_id: str


class EnhanceTextRequest(CamelModel):
    text: str
    action: str


class PatientHistoryRequest(CamelModel):
    patient_name: str
    evolutions: List[str]
    patient_id: str


class TranscribeAudioRequest(CamelModel):
    audio_base64: str
    audio_type: str
    language: Optional[str] = 'pt'
