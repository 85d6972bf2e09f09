"""
Prompt templates for chest X-ray interpretation.

The report structure is fixed so the client can render every exam the
same way. Output language is Brazilian Portuguese.
"""

from typing import Any, Dict, List


SYSTEM_PROMPT = """Você é um radiologista especialista. Analise a imagem de raio X fornecida e forneça um diagnóstico seguindo este formato:

ANÁLISE RADIOLÓGICA:

• Campos pulmonares: [descrição detalhada]
• Silhueta cardíaca: [descrição do tamanho e contornos]
• Estruturas ósseas: [análise das costelas, clavículas, etc.]
• Mediastino: [avaliação dos contornos]
• Outros achados: [observações adicionais]

CONCLUSÃO: [diagnóstico resumido e recomendações]

IMPORTANTE: Este é um diagnóstico assistido por IA e deve ser validado por um médico."""

USER_INSTRUCTION = "Analise esta imagem de raio X e forneça um diagnóstico detalhado."

# Vision detail hint sent with the embedded image
IMAGE_DETAIL = "high"


def build_image_data_url(image_base64: str, mime_type: str) -> str:
    """Embed base64 image content in a data URL tagged with its MIME type."""
    return f"data:{mime_type};base64,{image_base64}"


def build_messages(image_base64: str, mime_type: str) -> List[Dict[str, Any]]:
    """
    Build the chat messages for a single X-ray analysis.

    Args:
        image_base64: Base64-encoded image bytes
        mime_type: MIME type of the encoded image

    Returns:
        System and user messages in chat-completions format
    """
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": USER_INSTRUCTION},
                {
                    "type": "image_url",
                    "image_url": {
                        "url": build_image_data_url(image_base64, mime_type),
                        "detail": IMAGE_DETAIL,
                    },
                },
            ],
        },
    ]
