"""System prompt composition for the chat assistant."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from .modes import Classification, Mode
from .schemas import LearnedPattern, ModeConfig

HANDOFF_NOTICE = (
    "Entendi! Vou transferir você para um de nossos especialistas. "
    "Aguarde um momento, por favor. 🎯\n\n"
    "Enquanto isso, posso ajudar com mais alguma informação?"
)

HANDOFF_ESCALATION_REASON = "User requested human agent"

BUSINESS_CONTEXT = """
## INFORMAÇÕES SOBRE A SKY BRASIL

**Serviços para Streamers:**
- Acesso a marcas premium para parcerias
- Treinamento especializado em live commerce
- Estratégias personalizadas de monetização
- Suporte técnico para OBS e streaming
- Criação de identidade visual profissional
- Comunidade exclusiva de streamers
- Mentoria de conteúdo

**Serviços para Empresas/Marcas:**
- Conexão com streamers qualificados
- Campanhas de live commerce
- Análise de resultados em tempo real
- ROI comprovado em vendas

**Contatos:**
- Email: skyagencysc@gmail.com ou info@skystreamer.online
- WhatsApp: +55 48 99661-7935
- Instagram: @skyagencysc
- Site: skystreamer.online

## ESPECIALIZAÇÃO EM PLATAFORMAS

**KWAI:** Cadastro, lives, monetização, horários ideais (19h-22h)
**TIKTOK:** TikTok LIVE (1000+ seguidores), TikTok Shop, trends
**FACEBOOK:** Facebook Gaming, Stars, assinaturas, anúncios in-stream
**YOUTUBE:** Lives, Programa de Parcerias, Super Chat, YouTube Shopping

## CONFIGURAÇÃO TÉCNICA

**OBS Studio:** Qualidade recomendada - 1080p60 (6000kbps), 720p60 (4500kbps)
**Streamlabs:** Alertas, chatbox, overlays integrados
**Equipamentos:** i5/Ryzen 5, 16GB RAM, webcam HD, microfone USB, ring light

## REGRAS GERAIS

1. Use português brasileiro
2. Seja educado, profissional e entusiasta
3. Formate com **negrito**, *itálico* e listas
4. Se não souber algo, sugira contato direto
5. Use emojis com moderação (🎮 🎯 💡 📺 💰 🚀)
""".strip()

ANTI_REPETITION_RULE = """
## REGRA CRÍTICA: NÃO REPITA

NUNCA repita a mesma resposta ou mensagem anterior.
Se você já disse algo, NÃO diga novamente.
Se perceber que está prestes a repetir, mude a abordagem completamente.
Cada resposta deve ser ÚNICA e adicionar valor novo à conversa.
""".strip()

CREDITS_AUTHORIZED_RULE = """
## CRÉDITOS AUTORIZADOS

O usuário autorizou o uso de créditos/recursos pagos.
Você pode usar ferramentas avançadas e APIs externas se necessário.
""".strip()

CREDITS_LOCKED_RULE = """
## CONTROLE DE CRÉDITOS

IMPORTANTE: NÃO use ferramentas pagas ou APIs externas a menos que o usuário diga explicitamente:
- "use créditos" / "autorizo gasto" / "pode gastar créditos"
Se uma funcionalidade requer créditos, responda:
"Essa funcionalidade requer uso de créditos. Posso prosseguir? Diga 'autorizo uso de créditos' para confirmar."
""".strip()

TOPIC_SHIFT_HINT = (
    "Se o usuário mudar de assunto (ex: de dúvida técnica para interesse em comprar), "
    "adapte naturalmente sua abordagem."
)


class PromptTemplateStore:
    """Resolve the persona template for a mode.

    A configured template wins when its mode is enabled; otherwise the
    built-in default for the mode is used.
    """

    _DEFAULT_TEMPLATES: Mapping[Mode, str] = {
        Mode.SALES: (
            "Você atua como consultor da SKY BRASIL.\n"
            "Só apresente produtos se houver interesse explícito.\n"
            "Explique benefícios com exemplos reais.\n"
            "Nunca pressione o usuário.\n"
            "Foque em entender a necessidade antes de oferecer soluções."
        ),
        Mode.MARKETING: (
            "Você cria mensagens personalizadas e úteis.\n"
            "Sugira conteúdos relevantes baseados no interesse do usuário.\n"
            "O objetivo é ajudar, não interromper."
        ),
        Mode.FINANCIAL_TUTOR: (
            "Você é um tutor financeiro especializado em certificações "
            "(ANCORD, CEA, CFP, CPA-10, CPA-20).\n\n"
            "SUAS RESPONSABILIDADES:\n"
            "1. Explicar conceitos financeiros de forma clara e didática\n"
            "2. Usar exemplos práticos do mercado brasileiro\n"
            "3. Mencionar regulamentações da CVM e ANBIMA quando apropriado\n"
            "4. Ajudar na preparação para simulados e exames\n"
            "5. Esclarecer dúvidas sobre tópicos específicos de cada certificação\n"
            "6. Motivar e encorajar o aluno em sua jornada de estudos\n\n"
            "TÓPICOS PRINCIPAIS:\n"
            "- Mercado de Capitais e Instrumentos Financeiros\n"
            "- Renda Fixa (títulos públicos, privados, debêntures)\n"
            "- Renda Variável (ações, BDRs, ETFs)\n"
            "- Fundos de Investimento (classificação, tributação)\n"
            "- Derivativos (opções, futuros, swaps)\n"
            "- Previdência e Planejamento Financeiro\n"
            "- Ética e Regulamentação (CVM, ANBIMA, BACEN)\n"
            "- Matemática Financeira\n"
            "- Tributação de Investimentos\n\n"
            "FORMATO DE RESPOSTA:\n"
            "- Use **negrito** para termos importantes\n"
            "- Use listas para organizar informações\n"
            "- Inclua exemplos práticos quando possível\n"
            "- Sugira tópicos relacionados para aprofundamento"
        ),
        Mode.SUPPORT: (
            "Você é um assistente de suporte profissional.\n"
            "Seu objetivo é resolver o problema do usuário com clareza e precisão.\n"
            "Se não tiver certeza, diga explicitamente.\n"
            "Nunca invente respostas."
        ),
    }

    def __init__(self, extra_templates: Mapping[Mode, str] | None = None):
        self._templates: dict[Mode, str] = dict(self._DEFAULT_TEMPLATES)
        if extra_templates:
            self._templates.update(extra_templates)

    def default_for(self, mode: Mode) -> str:
        return self._templates.get(mode) or self._templates[Mode.SUPPORT]

    def resolve(self, mode: Mode, config: ModeConfig | None) -> str:
        """Return the prompt template for ``mode``."""

        if config and config.is_enabled and config.prompt_template:
            return config.prompt_template
        return self.default_for(mode)


def _footer(classification: Classification, credits_authorized: bool) -> str:
    return (
        f"**Modo atual:** {classification.mode.value.upper()}\n"
        f"**Confiança na detecção:** {classification.confidence * 100:.0f}%\n"
        f"**Créditos autorizados:** {'SIM' if credits_authorized else 'NÃO'}"
    )


def _learnings_block(learnings: Iterable[LearnedPattern]) -> str:
    lines = [f"- {item.pattern}" for item in learnings]
    if not lines:
        return ""
    return "**Padrões que funcionam bem neste contexto:**\n" + "\n".join(lines)


def compose_system_prompt(
    template: str,
    classification: Classification,
    *,
    credits_authorized: bool,
    learnings: Iterable[LearnedPattern] = (),
) -> str:
    """Assemble the system instruction sent ahead of the conversation history.

    Sections appear in a fixed order: persona template, business context,
    anti-repetition rule, credit policy, a footer stating mode, confidence and
    authorization, and finally any learned patterns for the mode.
    """

    sections = [
        template,
        BUSINESS_CONTEXT,
        ANTI_REPETITION_RULE,
        CREDITS_AUTHORIZED_RULE if credits_authorized else CREDITS_LOCKED_RULE,
        _footer(classification, credits_authorized) + "\n\n" + TOPIC_SHIFT_HINT,
    ]
    learned = _learnings_block(learnings)
    if learned:
        sections.append(learned)
    return "\n\n".join(sections)


__all__ = [
    "ANTI_REPETITION_RULE",
    "BUSINESS_CONTEXT",
    "CREDITS_AUTHORIZED_RULE",
    "CREDITS_LOCKED_RULE",
    "HANDOFF_ESCALATION_REASON",
    "HANDOFF_NOTICE",
    "PromptTemplateStore",
    "compose_system_prompt",
]
