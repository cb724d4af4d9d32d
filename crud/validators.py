# crud/validators.py
"""
Validações de documentos e de dados exigidos pelo ASAAS
"""

import re
from typing import Dict, Optional, Tuple
from crud.utils import limpar_digitos

EMAIL_REGEX = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
EMAIL_ACENTOS_REGEX = re.compile(r'[àáâãäåèéêëìíîïòóôõöùúûü]', re.IGNORECASE)
DOMINIO_SUSPEITO_REGEX = re.compile(r'\.(con|comm|gmial|hotmial|yahooo)$', re.IGNORECASE)


def _calcular_digito_cpf(digitos: str, fator: int) -> int:
    total = 0
    for digito in digitos:
        if fator > 1:
            total += int(digito) * fator
            fator -= 1
    resto = total % 11
    return 0 if resto < 2 else 11 - resto


def cpf_com_digitos_repetidos(cpf: str) -> bool:
    cpf_limpo = limpar_digitos(cpf)
    return len(cpf_limpo) == 11 and len(set(cpf_limpo)) == 1


def validar_cpf(cpf: str) -> bool:
    """Valida um CPF pelos dígitos verificadores."""
    cpf_limpo = limpar_digitos(cpf)
    if len(cpf_limpo) != 11 or cpf_com_digitos_repetidos(cpf_limpo):
        return False

    if _calcular_digito_cpf(cpf_limpo[:9], 10) != int(cpf_limpo[9]):
        return False
    return _calcular_digito_cpf(cpf_limpo[:10], 11) == int(cpf_limpo[10])


def validar_cpf_mensagem(cpf: Optional[str]) -> Tuple[bool, Optional[str]]:
    """
    Valida o CPF e devolve (valido, mensagem_de_erro) para exibição em formulários.
    """
    if not cpf or not cpf.strip():
        return False, 'CPF é obrigatório'

    cpf_limpo = limpar_digitos(cpf)
    if len(cpf_limpo) != 11:
        return False, 'CPF deve conter 11 dígitos'
    if cpf_com_digitos_repetidos(cpf_limpo):
        return False, 'Este CPF não pode ser utilizado'
    if not validar_cpf(cpf_limpo):
        return False, 'CPF inválido. Verifique os dígitos informados'
    return True, None


def validar_cpf_opcional(cpf: Optional[str]) -> Tuple[bool, Optional[str]]:
    """Como validar_cpf_mensagem, mas um CPF vazio é aceito."""
    if not cpf or not cpf.strip():
        return True, None
    return validar_cpf_mensagem(cpf)


def formatar_cpf(cpf: str) -> str:
    cpf_limpo = limpar_digitos(cpf)
    if len(cpf_limpo) != 11:
        return cpf
    return f"{cpf_limpo[:3]}.{cpf_limpo[3:6]}.{cpf_limpo[6:9]}-{cpf_limpo[9:]}"


def validar_responsavel_asaas(responsavel: Dict) -> Dict:
    """
    Verifica se o responsável financeiro tem os dados que o ASAAS exige para
    criar o cliente e gerar a cobrança.

    Args:
        responsavel: dicionário com nome, cpf_cnpj, email, telefone, cep e numero_endereco

    Returns:
        {'isValid': bool, 'missingFields': [...], 'warnings': [...]}
    """
    missing_fields = []
    warnings = []

    def _vazio(campo):
        valor = responsavel.get(campo)
        return valor is None or not str(valor).strip()

    if _vazio('nome'):
        missing_fields.append('Nome completo')
    if _vazio('cpf_cnpj'):
        missing_fields.append('CPF/CNPJ')

    if _vazio('email'):
        missing_fields.append('Email')
    else:
        email = str(responsavel['email'])
        if not EMAIL_REGEX.match(email):
            warnings.append('Email com formato inválido')
        if EMAIL_ACENTOS_REGEX.search(email):
            warnings.append('Email contém caracteres especiais não permitidos')
        partes = email.split('@')
        if len(partes) > 1 and DOMINIO_SUSPEITO_REGEX.search(partes[1]):
            warnings.append('Email com domínio suspeito - verifique se está correto')

    if not responsavel.get('telefone'):
        missing_fields.append('Telefone')
    if _vazio('cep'):
        missing_fields.append('CEP')
    if _vazio('numero_endereco'):
        missing_fields.append('Número da residência')

    return {
        'isValid': not missing_fields and not warnings,
        'missingFields': missing_fields,
        'warnings': warnings,
    }


def montar_mensagem_erro_asaas(validacao: Dict, nome_responsavel: Optional[str] = None) -> str:
    """Monta a mensagem exibida quando o responsável não pode ser cobrado."""
    if validacao['isValid']:
        return ''

    partes = [f"Não é possível gerar cobrança{f' para {nome_responsavel}' if nome_responsavel else ''}."]

    if validacao['missingFields']:
        partes.append('\nCampos obrigatórios faltando:')
        partes.extend(f"• {campo}" for campo in validacao['missingFields'])

    if validacao['warnings']:
        partes.append('\nAvisos:')
        partes.extend(f"• {aviso}" for aviso in validacao['warnings'])

    partes.append('\nPor favor, complete os dados do responsável financeiro antes de gerar a cobrança.')
    return '\n'.join(partes)
