# crud/ai.py
"""
Assistentes de IA para a documentação clínica: melhoria de texto de
evolução, compilação do histórico do paciente e transcrição de áudio.
"""

import base64
import binascii
import logging
import os
import threading
import time
from typing import Dict, List, Optional
from firebase_admin import firestore
from openai import OpenAI
from crud.utils import decrypt_sensitive_fields

logger = logging.getLogger(__name__)

MODELO_PADRAO = 'gpt-3.5-turbo'
MAX_CARACTERES_TEXTO = 10000
MAX_CARACTERES_HISTORICO = 15000
MAX_BYTES_AUDIO = 25 * 1024 * 1024

SISTEMA_EVOLUCAO = ('Você é um assistente especializado em fisioterapia respiratória pediátrica '
                    'com vasta experiência em documentação médica.')
SISTEMA_HISTORICO = ('Você é um fisioterapeuta respiratório pediátrico especializado com vasta '
                     'experiência em análise de evolução de pacientes.')
PROMPT_TRANSCRICAO = ('Este é um relatório médico de fisioterapia respiratória pediátrica. '
                      'Use terminologia médica apropriada.')

PROMPTS_ACAO = {
    'improve': """Você é um assistente especializado em fisioterapia respiratória pediátrica.
Melhore o seguinte texto de evolução médica mantendo:
- Terminologia médica apropriada
- Clareza e objetividade
- Estrutura profissional
- Todas as informações clínicas importantes
- Tom profissional e técnico

Texto a melhorar:""",
    'summarize': """Você é um assistente especializado em fisioterapia respiratória pediátrica.
Crie um resumo conciso do seguinte texto de evolução médica mantendo:
- Informações clínicas essenciais
- Terminologia médica precisa
- Estrutura clara e objetiva
- Principais intervenções e resultados

Texto a resumir:""",
    'medical_format': """Você é um assistente especializado em fisioterapia respiratória pediátrica.
Formate o seguinte texto seguindo padrões médicos profissionais:
- Use terminologia técnica apropriada
- Organize em seções lógicas (quando aplicável)
- Mantenha objetividade científica
- Use formatação médica padrão
- Preserve todas as informações clínicas

Texto a formatar:""",
}

PROMPT_HISTORICO = """Você é um fisioterapeuta respiratório pediátrico experiente.
Compile as seguintes evoluções em um histórico abrangente e estruturado do paciente.

INSTRUÇÕES:
- Organize cronologicamente quando possível
- Identifique padrões de progresso ou regressão
- Destaque marcos importantes no tratamento
- Sintetize objetivos alcançados e pendentes
- Use terminologia técnica apropriada
- Mantenha formato profissional e objetivo
- Inclua recomendações baseadas na evolução observada

ESTRUTURA SUGERIDA:
1. Resumo da condição inicial
2. Principais intervenções realizadas
3. Evolução e progressos observados
4. Desafios e intercorrências
5. Status atual e recomendações

Evoluções a compilar:"""


class LimiteRequisicoesExcedido(Exception):
    pass


class RateLimiter:
    """Janela deslizante em memória: no máximo max_requests por window_seconds para cada chave."""

    def __init__(self, max_requests: int, window_seconds: int = 60):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._requisicoes: Dict[str, List[float]] = {}
        self._lock = threading.Lock()

    def permitir(self, chave: str) -> bool:
        agora = time.monotonic()
        with self._lock:
            validas = [t for t in self._requisicoes.get(chave, []) if agora - t < self.window_seconds]
            if len(validas) >= self.max_requests:
                self._requisicoes[chave] = validas
                return False
            validas.append(agora)
            self._requisicoes[chave] = validas
            return True

    def verificar(self, chave: str):
        if not self.permitir(chave):
            raise LimiteRequisicoesExcedido('Rate limit exceeded. Try again in a minute.')


limite_melhoria = RateLimiter(15, 60)
limite_historico = RateLimiter(10, 60)
limite_transcricao = RateLimiter(10, 60)


def buscar_chave_openai(db: firestore.client) -> str:
    query = db.collection('api_keys') \
        .where('service_name', '==', 'openai') \
        .where('is_active', '==', True) \
        .limit(1)
    doc = next(query.stream(), None)
    if doc:
        chave = decrypt_sensitive_fields(doc.to_dict(), ['encrypted_key']).get('encrypted_key')
        if chave:
            return chave

    chave = os.getenv('OPENAI_API_KEY')
    if not chave:
        raise RuntimeError('OpenAI API key not found or inactive')
    return chave


def buscar_prompt(db: firestore.client, nome: str) -> Optional[Dict]:
    query = db.collection('ai_prompts') \
        .where('prompt_name', '==', nome) \
        .where('is_active', '==', True) \
        .limit(1)
    doc = next(query.stream(), None)
    return doc.to_dict() if doc else None


def get_openai_client(api_key: str) -> OpenAI:
    return OpenAI(api_key=api_key, organization=os.getenv('OPENAI_ORG_ID'))


def _completar(client: OpenAI, modelo: str, sistema: str, conteudo: str, max_tokens: int, temperatura: float) -> str:
    response = client.chat.completions.create(
        model=modelo,
        messages=[
            {'role': 'system', 'content': sistema},
            {'role': 'user', 'content': conteudo},
        ],
        max_tokens=max_tokens,
        temperature=temperatura,
    )
    texto = (response.choices[0].message.content or '').strip() if response.choices else ''
    if not texto:
        raise RuntimeError('No text received from OpenAI')
    return texto


def melhorar_texto(db: firestore.client, texto: str, acao: str, cliente_ip: str) -> Dict:
    """
    Reescreve um texto de evolução com o modelo configurado em ai_prompts.

    Raises:
        ValueError: texto ausente, ação inválida ou texto longo demais
        LimiteRequisicoesExcedido: mais de 15 pedidos por minuto do mesmo IP
    """
    if not texto or not acao:
        raise ValueError('text and action are required')
    if acao not in PROMPTS_ACAO:
        raise ValueError('Invalid action. Use: improve, summarize, or medical_format')

    limite_melhoria.verificar(cliente_ip)

    if len(texto) > MAX_CARACTERES_TEXTO:
        raise ValueError('Text too long. Maximum length is 10,000 characters.')

    prompt = buscar_prompt(db, 'evolution_improve') or {}
    instrucao = prompt.get('prompt_content') or PROMPTS_ACAO[acao]
    modelo = prompt.get('openai_model') or MODELO_PADRAO

    client = get_openai_client(buscar_chave_openai(db))
    inicio = time.monotonic()
    melhorado = _completar(client, modelo, SISTEMA_EVOLUCAO, f"{instrucao}\n\n{texto}", 1500, 0.3)
    logger.info(f"🤖 Texto melhorado ({acao}) em {int((time.monotonic() - inicio) * 1000)}ms")

    return {
        'success': True,
        'enhancedText': melhorado,
        'originalLength': len(texto),
        'enhancedLength': len(melhorado),
    }


def compilar_historico_paciente(db: firestore.client, nome_paciente: str, evolucoes: List[str],
                                paciente_id: str, cliente_ip: str) -> Dict:
    if not nome_paciente or not evolucoes:
        raise ValueError('patientName and evolutions array are required')

    limite_historico.verificar(f"{cliente_ip}-{paciente_id}")

    texto_evolucoes = '\n\n'.join(
        f"=== EVOLUÇÃO {indice} ===\n{evolucao}" for indice, evolucao in enumerate(evolucoes, start=1)
    )
    if len(texto_evolucoes) > MAX_CARACTERES_HISTORICO:
        raise ValueError('Combined evolutions too long. Maximum length is 15,000 characters.')

    logger.info(f"🤖 Compilando histórico: paciente={paciente_id}, evoluções={len(evolucoes)}")
    client = get_openai_client(buscar_chave_openai(db))
    historico = _completar(
        client, MODELO_PADRAO, SISTEMA_HISTORICO,
        f"{PROMPT_HISTORICO}\n\nPACIENTE: {nome_paciente}\n\n{texto_evolucoes}", 2000, 0.2,
    )

    return {
        'success': True,
        'compiledHistory': historico,
        'evolutionsCount': len(evolucoes),
        'historyLength': len(historico),
    }


def transcrever_audio(db: firestore.client, audio_base64: str, audio_type: str, cliente_ip: str,
                      idioma: str = 'pt') -> Dict:
    if not audio_base64 or not audio_type:
        raise ValueError('audioBase64 and audioType are required')

    limite_transcricao.verificar(cliente_ip)

    try:
        audio = base64.b64decode(audio_base64, validate=True)
    except (binascii.Error, ValueError):
        raise ValueError('Invalid base64 audio')

    if len(audio) > MAX_BYTES_AUDIO:
        raise ValueError('Audio file too large. Maximum size is 25MB.')

    extensao = 'webm' if audio_type == 'audio/webm' else 'mp3'
    nome_arquivo = f"audio_{int(time.time() * 1000)}.{extensao}"
    logger.info(f"🎙️ Transcrevendo {nome_arquivo}, {len(audio)} bytes")

    client = get_openai_client(buscar_chave_openai(db))
    inicio = time.monotonic()
    transcricao = client.audio.transcriptions.create(
        file=(nome_arquivo, audio, audio_type),
        model='whisper-1',
        language=idioma or 'pt',
        response_format='text',
        prompt=PROMPT_TRANSCRICAO,
    )

    return {
        'success': True,
        'transcription': str(transcricao).strip(),
        'duration': int((time.monotonic() - inicio) * 1000),
    }
