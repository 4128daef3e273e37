"""
Pattern and Prompt Definitions for the Legal Assistant

All heuristic patterns, prompt templates, and fixed user-facing messages.
Modules import from here instead of defining strings inline.
"""

import re

# =============================================================================
# Domain Classification Heuristics
# =============================================================================

# Short greetings and small talk, in the languages users write in
GREETING_PATTERNS = [
    re.compile(r"\b(?:hi|hello|hey|hallo|servus|ciao|bonjour|salut|gr[uü]ezi)\b", re.IGNORECASE),
    re.compile(r"\bgood (?:morning|afternoon|evening|day)\b", re.IGNORECASE),
    re.compile(r"\bguten (?:tag|morgen|abend)\b", re.IGNORECASE),
    re.compile(r"\b(?:thanks|thank you|danke|merci)\b", re.IGNORECASE),
]

# Topics that are clearly outside the legal domain
OUT_OF_DOMAIN_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bhow are you\b",
        r"\bwhat time\b",
        r"\bweather\b",
        r"\bnews\b",
        r"\bsports?\b",
        r"\bmusic\b",
        r"\bmovies?\b",
        r"\bfood\b",
        r"\btravel\b",
        r"\bshopping\b",
        r"\bwie geht es\b",
        r"\bwie sp[äa]t\b",
        r"\bwetter\b",
        r"\bnachrichten\b",
        r"\bmusik\b",
        r"\bfilm\b",
        r"\bessen\b",
        r"\breisen\b",
        r"\beinkaufen\b",
    )
]

# =============================================================================
# Fixed Messages
# =============================================================================

NO_INFORMATION_MESSAGE = (
    "I don't have specific information about that in the {domain_name} documents. "
    "Could you rephrase your question or ask about something else?"
)

ERROR_MESSAGE = "I'm sorry, I encountered an error processing your question. Please try again."

CANCELLED_MESSAGE = "The request was cancelled before an answer was produced."

# =============================================================================
# Labels
# =============================================================================

LABELS = {
    "page": "Page",
    "source_title": "{title} – Page {page}",
    "context_page": "[Page {page}]",
    "conversation_header": "Previous conversation:",
    "documents_header": "Reference documents:",
}

# =============================================================================
# LLM Prompts
# =============================================================================

LLM_PROMPTS = {
    "classification": """Determine if this question is specifically asking about {domain_name} legal matters. Consider:
- Simple greetings (hi, hello) = NO
- General questions not about law = NO
- Questions about law, legal procedures, rights, obligations = YES
- Questions about finding lawyers = YES

Answer only "YES" or "NO".

Question: "{question}\"""",

    "classification_context": """

Conversation context:
{conversation}

Consider the conversation history when determining if this is a legal question.""",

    "general_response": (
        "You are {assistant_name}, a {domain_name} legal assistant. Respond naturally to: {question}. "
        "If it's a greeting, introduce yourself briefly and ask how you can help with legal questions. "
        "Format your response in markdown."
    ),

    "rag_system": """You are {assistant_name}, a legal research assistant for the {domain_name}.
Answer questions based ONLY on the provided reference documents and conversation.

Rules:
- Provide a direct, clear answer based on the documents above the question
- Reference the specific article or page where the answer is found
- If the information is incomplete in the provided documents, say so clearly
- Keep the answer professional and concise""",

    "rag_user": """{context}

Question: {question}""",

    "format_directive": """

CRITICAL: Format your entire response in markdown. Use proper markdown syntax including:
- Headers (# ## ###)
- Bold text (**text**)
- Italic text (*text*)
- Lists (- item or 1. item)
- Blockquotes (> quote)

Your response must be in markdown format.""",

    "follow_ups": """Based on this question and answer, suggest 3 helpful follow-up questions that a user might want to ask. Keep them concise and relevant.

Question: {question}
Answer: {answer}

Return only the questions, one per line, without numbering or bullet points.""",

    "recommendations": """Based on this legal question and answer, determine if lawyer recommendations would be helpful. Only recommend lawyers if:
1. The user specifically asks for lawyer recommendations
2. The question involves complex legal procedures requiring professional assistance
3. The answer suggests the user needs professional legal representation

Question: {question}
Answer: {answer}

If lawyer recommendations are appropriate, provide 2-3 lawyers practising in the {domain_name} with the following JSON format:
{{
  "lawyerRecommendations": [
    {{
      "name": "Dr. [First Name] [Last Name]",
      "specialties": ["relevant practice areas"],
      "rating": 4.5,
      "phone": "+41 [area code] [number]",
      "email": "[name]@law.ch",
      "address": "[Street], [ZIP] [City]",
      "availability": "Mon-Fri 9:00-17:00",
      "experience": "10+ years",
      "languages": ["German", "English", "French"]
    }}
  ]
}}

If no lawyer recommendations are needed, return: {{"lawyerRecommendations": []}}

Return JSON only.""",
}

# Leading list markers the model sometimes adds despite instructions
LIST_MARKER_PATTERN = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+")

# Surrounding markdown code fences on structured output
CODE_FENCE_PATTERN = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")
