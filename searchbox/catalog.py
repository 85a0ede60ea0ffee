"""
Model catalog: the static list of models a user can pick.

Keys are the identifiers the front-end sends as `model`. Each entry says
which completion strategy serves it:

    chat_completion    structured role-tagged chat API (LLaMA, Qwen)
    direct_generation  single-turn generation API (Gemini)
    plain_text         URL-embedded plain-text API (everything else)
"""

from __future__ import annotations

from dataclasses import dataclass

CHAT_COMPLETION = "chat_completion"
DIRECT_GENERATION = "direct_generation"
PLAIN_TEXT = "plain_text"


@dataclass(frozen=True)
class ModelConfig:
    name: str
    alias: str
    max_tokens: int
    temperature: float
    icon: str
    backend: str = PLAIN_TEXT


LLAMA_70B = "llama-3.3-70b-versatile"
GPT41 = "openai-large"
GPT41_NANO = "openai-fast"
DEEPSEEK_R1 = "deepseek-reasoning"
O3_REASONING = "openai-reasoning"
QWEN_CODER = "qwen-coder"
MISTRAL = "mistral"
GEMINI_FLASH = "gemini-flash"

DEFAULT_MODEL = MISTRAL

MODEL_CONFIGS: dict[str, ModelConfig] = {
    LLAMA_70B: ModelConfig(
        name="LLaMA-3 70B",
        alias=LLAMA_70B,
        max_tokens=4096,
        temperature=0.7,
        icon="/models/llama.svg",
        backend=CHAT_COMPLETION,
    ),
    GPT41: ModelConfig(
        name="OpenAI GPT-4.1 (Full Version)",
        alias="gpt-4.1",
        max_tokens=32768,
        temperature=0.7,
        icon="/openai-chatgpt-logo-icon-free-png.webp",
    ),
    GPT41_NANO: ModelConfig(
        name="OpenAI GPT-4.1 Nano",
        alias="gpt-4.1-nano",
        max_tokens=32768,
        temperature=0.7,
        icon="/openai-chatgpt-logo-icon-free-png.webp",
    ),
    DEEPSEEK_R1: ModelConfig(
        name="DeepSeek Reasoning R1",
        alias="deepseek-r1-0528",
        max_tokens=16384,
        temperature=0.7,
        icon="/deepseek_logo_icon-logo_brandlogos.net_s5bgc.png",
    ),
    O3_REASONING: ModelConfig(
        name="OpenAI O3 Reasoning",
        alias="o3",
        max_tokens=32768,
        temperature=0.7,
        icon="/openai-chatgpt-logo-icon-free-png.webp",
    ),
    QWEN_CODER: ModelConfig(
        name="Qwen 2.5 Coder 32B",
        alias="qwen2.5-coder-32b-instruct",
        max_tokens=32768,
        temperature=0.7,
        icon="/qwen.webp",
        backend=CHAT_COMPLETION,
    ),
    MISTRAL: ModelConfig(
        name="Mistral Small 3.1 24B",
        alias="mistral-small-3.1-24b-instruct",
        max_tokens=16384,
        temperature=0.7,
        icon="/mistral.png",
    ),
    GEMINI_FLASH: ModelConfig(
        name="Gemini 2.0 Flash",
        alias="gemini-2.0-flash",
        max_tokens=8192,
        temperature=0.7,
        icon="/gemini.svg",
        backend=DIRECT_GENERATION,
    ),
}

# Backend alias (or catalog key) -> display name used by the cost table
# and the usage dashboard. Both GPT-4.1 sizes bill under one name.
MODEL_NAME_MAPPING: dict[str, str] = {
    "mistral-small-3.1-24b-instruct": "Mistral Small 3.1 24B",
    "llama-3.3-70b-versatile": "LLaMA-3 70B",
    "gpt-4.1": "OpenAI GPT-4.1",
    "gpt-4.1-nano": "OpenAI GPT-4.1",
    "deepseek-r1-0528": "DeepSeek Reasoning R1",
    "o3": "OpenAI O3 Reasoning",
    "qwen2.5-coder-32b-instruct": "Qwen 2.5 Coder 32B",
}


def is_valid_model(model_id: str) -> bool:
    return model_id in MODEL_CONFIGS


def get_model_config(model_id: str) -> ModelConfig | None:
    return MODEL_CONFIGS.get(model_id)


def display_name(model_id: str) -> str:
    """
    Resolve a catalog key or backend alias to its billing display name.
    Unknown identifiers are returned unchanged.
    """
    if model_id in MODEL_NAME_MAPPING:
        return MODEL_NAME_MAPPING[model_id]
    cfg = MODEL_CONFIGS.get(model_id)
    if cfg is not None:
        return MODEL_NAME_MAPPING.get(cfg.alias, cfg.name)
    return model_id
