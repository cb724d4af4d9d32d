# crud/cobranca.py
"""
Geração do texto descritivo das cobranças enviadas ao ASAAS
"""

import logging
import re
from typing import Dict, List, Optional
from firebase_admin import firestore
from crud.utils import parse_datetime, FUSO_CLINICA

logger = logging.getLogger(__name__)

TIPOS_PROFISSIONAL = ('fisioterapeuta', 'fonoaudióloga', 'terapeuta ocupacional')

PLURAIS = (
    ('sessão', 'sessões'),
    ('consulta', 'consultas'),
    ('avaliação', 'avaliações'),
)


def _pluralizar(descricao: str) -> str:
    texto = descricao.lower()
    for singular, plural in PLURAIS:
        if singular in texto:
            return re.sub(singular, plural, descricao, flags=re.IGNORECASE)
    return descricao


def _formatar_valor(valor) -> str:
    return f"R$ {float(valor or 0):.2f}".replace('.', ',')


def _juntar_com_e(itens: List[str]) -> str:
    if not itens:
        return ''
    if len(itens) == 1:
        return itens[0]
    return f"{', '.join(itens[:-1])} e {itens[-1]}"


def montar_descricao_cobranca(
    consultas: List[Dict],
    paciente: Dict,
    profissional: Optional[Dict] = None,
    descricoes_servicos: Optional[Dict[str, str]] = None,
) -> str:
    """
    Monta a descrição da cobrança a partir das consultas faturadas.

    Exemplo: "2 sessões de fisioterapia respiratória. Atendimento realizado ao paciente
    Ana CPF 123..., pela fisioterapeuta Maria CPF 987... CREFITO-1. Nos dias
    01/02/2025 (R$ 150,00) e 08/02/2025 (R$ 150,00)"
    """
    descricoes_servicos = descricoes_servicos or {}
    profissional = profissional or {}

    grupos: Dict[str, int] = {}
    for consulta in consultas:
        servico = consulta.get('servico_nome') or 'Atendimento'
        grupos[servico] = grupos.get(servico, 0) + 1

    textos_servicos = []
    for servico, quantidade in grupos.items():
        descricao = descricoes_servicos.get(servico) or servico.lower()
        if quantidade > 1:
            descricao = _pluralizar(descricao)
        textos_servicos.append(f"{quantidade} {descricao}")

    ordenadas = sorted(consultas, key=lambda c: parse_datetime(c.get('data_hora')))
    datas = []
    for consulta in ordenadas:
        data_local = parse_datetime(consulta.get('data_hora')).astimezone(FUSO_CLINICA)
        datas.append(f"{data_local.strftime('%d/%m/%Y')} ({_formatar_valor(consulta.get('valor_servico'))})")

    profissional_nome = profissional.get('nome') or (consultas[0].get('profissional_nome') if consultas else None) \
        or 'Profissional'
    profissional_cpf = profissional.get('cpf_cnpj') or ''
    registro = profissional.get('registro_profissional') or ''
    registro_texto = f" {registro}" if registro else ''
    especialidade = (profissional.get('especialidade') or '').lower()
    profissional_tipo = especialidade if especialidade in TIPOS_PROFISSIONAL else 'fisioterapeuta'

    paciente_nome = (paciente or {}).get('nome') or 'Paciente'
    paciente_cpf = (paciente or {}).get('cpf_cnpj') or 'Não Informado'

    return (
        f"{'. '.join(textos_servicos)}. Atendimento realizado ao paciente {paciente_nome} CPF {paciente_cpf}, "
        f"pela {profissional_tipo} {profissional_nome} CPF {profissional_cpf}{registro_texto}. "
        f"Nos dias {_juntar_com_e(datas)}"
    )


def gerar_descricao_cobranca(db: firestore.client, consultas: List[Dict], paciente: Dict) -> str:
    """Busca as descrições dos serviços e os dados do profissional e monta o texto da cobrança."""
    descricoes_servicos = {}
    servico_ids = {c.get('tipo_servico_id') for c in consultas if c.get('tipo_servico_id')}
    for servico_id in servico_ids:
        doc = db.collection('tipo_servicos').document(servico_id).get()
        if doc.exists:
            servico = doc.to_dict()
            descricoes_servicos[servico.get('nome')] = servico.get('descricao') or servico.get('nome')

    profissional = None
    profissional_id = consultas[0].get('profissional_id') if consultas else None
    if profissional_id:
        doc = db.collection('pessoas').document(profissional_id).get()
        if doc.exists:
            profissional = doc.to_dict()
        else:
            logger.warning(f"⚠️ Profissional {profissional_id} não encontrado para a descrição da cobrança")

    descricao = montar_descricao_cobranca(consultas, paciente, profissional, descricoes_servicos)
    logger.info(f"📝 Descrição de cobrança gerada para {len(consultas)} consulta(s)")
    return descricao
