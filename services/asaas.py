# services/asaas.py
"""
Cliente da API REST do ASAAS (clientes, cobranças PIX e notas fiscais)
"""

import logging
import math
import os
import re
from typing import Optional, Dict, Any

import httpx

logger = logging.getLogger(__name__)

ASAAS_API_URL = os.getenv("ASAAS_API_URL", "https://api.asaas.com/v3")
DEFAULT_TIMEOUT = 30.0
NOTIFICATIONS_TIMEOUT = 15.0
DATE_REGEX = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def limpar_digitos(valor: Optional[str]) -> str:
    return re.sub(r"\D", "", str(valor or ""))


class AsaasError(Exception):
    """Falha retornada pela API do ASAAS ou na comunicação com ela."""

    def __init__(self, message: str, status_code: Optional[int] = None, data: Optional[Dict] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.data = data or {}


def _valor_positivo(valor: Any, mensagem: str) -> float:
    """Converte o valor para float; recusa texto não numérico, booleanos e valores <= 0."""
    if isinstance(valor, bool):
        raise AsaasError("Valor inválido")
    try:
        numero = float(valor)
    except (TypeError, ValueError):
        raise AsaasError("Valor inválido")
    if not math.isfinite(numero):
        raise AsaasError("Valor inválido")
    if numero <= 0:
        raise AsaasError(mensagem)
    return numero


def _validar_data(data: Any, mensagem: str) -> str:
    if not isinstance(data, str) or not DATE_REGEX.match(data):
        raise AsaasError(mensagem)
    return data


class AsaasClient:
    """
    Cliente síncrono do ASAAS. Cada empresa da clínica tem sua própria chave
    (pessoa_empresas.api_token_externo), então o cliente é criado por chamada.
    """

    def __init__(self, api_key: str, base_url: str = ASAAS_API_URL, http_client: Optional[httpx.Client] = None):
        if not api_key or not api_key.strip():
            raise AsaasError("API key do ASAAS não configurada")
        self.api_key = api_key.strip()
        self.base_url = base_url.rstrip('/')
        self._http = http_client or httpx.Client()

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "access_token": self.api_key,
            "Content-Type": "application/json",
            "User-Agent": "RespiraKids/1.0",
        }

    def _request(self, method: str, path: str, acao: str, json: Optional[Dict] = None,
                 params: Optional[Dict] = None, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.request(method, url, headers=self.headers, json=json, params=params, timeout=timeout)
        except httpx.TimeoutException:
            logger.error(f"Timeout ao {acao} no Asaas ({method} {path})")
            raise AsaasError(f"Timeout ao {acao} - tente novamente")
        except httpx.HTTPError as e:
            logger.error(f"Erro de comunicação com o Asaas ao {acao}: {e}")
            raise AsaasError("Erro na comunicação com o Asaas")

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.is_error:
            errors = data.get('errors') or []
            mensagem = errors[0].get('description') if errors else None
            logger.error(f"Erro da API Asaas ao {acao}: {response.status_code} {data}")
            raise AsaasError(mensagem or f"Erro {response.status_code} ao {acao} no Asaas",
                             status_code=response.status_code, data=data)
        return data

    # --- Clientes ---

    def criar_cliente(self, dados: Dict[str, Any]) -> Dict[str, Any]:
        """Cria um cliente no ASAAS. Exige name e cpfCnpj; campos vazios são descartados."""
        if not dados.get('name') or not dados.get('cpfCnpj'):
            raise AsaasError("Dados obrigatórios não informados")

        payload = dict(dados)
        payload['cpfCnpj'] = limpar_digitos(payload['cpfCnpj'])
        for campo in ('mobilePhone', 'phone', 'postalCode'):
            if payload.get(campo):
                payload[campo] = limpar_digitos(payload[campo])
        payload = {k: v for k, v in payload.items() if v not in (None, '')}

        cliente = self._request("POST", "/customers", "criar cliente", json=payload)
        logger.info(f"Cliente {cliente.get('id')} criado no Asaas")
        return cliente

    def buscar_cliente_por_cpf(self, cpf_cnpj: str) -> Dict[str, Any]:
        """Busca o cliente pelo CPF/CNPJ e devolve {'found': bool, 'customer': dict|None}."""
        cpf_limpo = limpar_digitos(cpf_cnpj)
        if not cpf_limpo:
            raise AsaasError("CPF/CNPJ é obrigatório")
        data = self._request("GET", "/customers", "buscar cliente", params={"cpfCnpj": cpf_limpo, "limit": 1})
        clientes = data.get('data') or []
        if clientes:
            return {"found": True, "customer": clientes[0]}
        return {"found": False, "customer": None}

    def criar_empresa(self, razao_social: str, cnpj: str) -> Dict[str, Any]:
        if not razao_social or not cnpj:
            raise AsaasError("Dados da empresa são obrigatórios")
        return self._request(
            "POST", "/customers", "criar empresa",
            json={"name": razao_social, "cpfCnpj": limpar_digitos(cnpj), "companyType": "MEI"},
            timeout=NOTIFICATIONS_TIMEOUT,
        )

    def validar_token(self) -> bool:
        """Confere se a chave é aceita pelo ASAAS."""
        try:
            self._request("GET", "/myAccount", "validar token", timeout=NOTIFICATIONS_TIMEOUT)
            return True
        except AsaasError as e:
            logger.warning(f"Token do Asaas recusado: {e.message}")
            return False

    def desabilitar_notificacoes(self, customer_id: str) -> None:
        """Desliga todas as notificações do ASAAS para o cliente (a clínica avisa pelo WhatsApp)."""
        if not customer_id:
            raise AsaasError("API key e customerId são obrigatórios")
        payload = {
            "customer": customer_id,
            "notifications": [{
                "enabled": False,
                "emailEnabledForProvider": False,
                "smsEnabledForProvider": False,
                "emailEnabledForCustomer": False,
                "smsEnabledForCustomer": False,
                "phoneCallEnabledForCustomer": False,
                "whatsappEnabledForCustomer": False,
            }],
        }
        self._request("PUT", "/notifications/batch", "desabilitar notificações", json=payload,
                      timeout=NOTIFICATIONS_TIMEOUT)

    # --- Cobranças ---

    def criar_pagamento(self, dados: Dict[str, Any]) -> Dict[str, Any]:
        """Cria uma cobrança PIX."""
        if not dados.get('customer') or not dados.get('value') or not dados.get('dueDate'):
            raise AsaasError("Dados obrigatórios não informados")
        valor = _valor_positivo(dados['value'], "Valor deve ser maior que zero para gerar cobrança no ASAAS")
        vencimento = _validar_data(dados['dueDate'], "Data de vencimento deve estar no formato YYYY-MM-DD")

        payload = {
            "customer": dados['customer'],
            "billingType": "PIX",
            "value": valor,
            "dueDate": vencimento,
            "description": dados.get('description') or 'Cobrança Respira Kids',
        }
        if dados.get('externalReference'):
            payload['externalReference'] = dados['externalReference']

        pagamento = self._request("POST", "/payments", "criar cobrança", json=payload)
        logger.info(f"Cobrança PIX {pagamento.get('id')} criada no Asaas")
        return pagamento

    def atualizar_pagamento(self, payment_id: str, dados: Dict[str, Any]) -> Dict[str, Any]:
        if not payment_id:
            raise AsaasError("ID do pagamento é obrigatório")
        payload = dict(dados)
        if 'value' in payload:
            payload['value'] = _valor_positivo(
                payload['value'], "Valor deve ser maior que zero para gerar cobrança no ASAAS",
            )
        if payload.get('dueDate'):
            _validar_data(payload['dueDate'], "Data de vencimento deve estar no formato YYYY-MM-DD")
        return self._request("PUT", f"/payments/{payment_id}", "atualizar cobrança", json=payload)

    def cancelar_pagamento(self, payment_id: str) -> Dict[str, Any]:
        if not payment_id:
            raise AsaasError("ID do pagamento é obrigatório")
        return self._request("DELETE", f"/payments/{payment_id}", "cancelar cobrança")

    def receber_em_dinheiro(self, payment_id: str, valor: float, data_pagamento: str,
                            notificar_cliente: bool = False) -> Dict[str, Any]:
        """Confirma no ASAAS um recebimento feito fora do PIX."""
        if not payment_id or valor is None or not data_pagamento:
            raise AsaasError("Dados obrigatórios não informados")
        valor = _valor_positivo(valor, "Valor deve ser maior que zero")
        _validar_data(data_pagamento, "Data de pagamento deve estar no formato YYYY-MM-DD")
        return self._request(
            "POST", f"/payments/{payment_id}/receiveInCash", "confirmar recebimento",
            json={"paymentDate": data_pagamento, "value": valor, "notifyCustomer": notificar_cliente},
        )

    # --- Notas fiscais ---

    def agendar_nota_fiscal(self, dados: Dict[str, Any]) -> Dict[str, Any]:
        if not dados.get('payment') or not dados.get('serviceDescription') or dados.get('value') is None \
                or not dados.get('effectiveDate'):
            raise AsaasError("Dados obrigatórios não informados")
        valor = _valor_positivo(dados['value'], "Valor deve ser maior que zero para emitir nota fiscal no ASAAS")
        _validar_data(dados['effectiveDate'], "Data de emissão deve estar no formato YYYY-MM-DD")

        payload = {
            "payment": dados['payment'],
            "serviceDescription": dados['serviceDescription'],
            "observations": dados.get('observations'),
            "value": valor,
            "deductions": dados.get('deductions', 0),
            "effectiveDate": dados['effectiveDate'],
            "municipalServiceId": dados.get('municipalServiceId'),
            "municipalServiceCode": dados.get('municipalServiceCode'),
            "municipalServiceName": dados.get('municipalServiceName'),
            "updatePayment": dados.get('updatePayment', False),
            "taxes": dados.get('taxes'),
            "externalReference": dados.get('externalReference'),
        }
        payload = {k: v for k, v in payload.items() if v is not None}
        nota = self._request("POST", "/invoices", "agendar nota fiscal", json=payload)
        logger.info(f"📄 Nota fiscal {nota.get('id')} agendada no Asaas")
        return nota

    def autorizar_nota_fiscal(self, invoice_id: str) -> Dict[str, Any]:
        if not invoice_id:
            raise AsaasError("ID da nota fiscal é obrigatório")
        return self._request("POST", f"/invoices/{invoice_id}/authorize", "autorizar nota fiscal")


def get_asaas_client(api_key: str) -> AsaasClient:
    """Fábrica usada pelas rotinas de cobrança."""
    return AsaasClient(api_key)
