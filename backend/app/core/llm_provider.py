"""
Provider-agnostic LLM factory.

Switch LLM provider by changing env vars, no code changes needed:
  LLM_PROVIDER=groq | openai | gemini
  LLM_MODEL=llama-3.3-70b-versatile | gpt-4o-mini | gemini-2.0-flash
  LLM_API_KEY=your-key

Learners may bring their own key, so the key and model are call-time
arguments instead of being read only from settings.
"""

from langchain_core.language_models import BaseChatModel

from app.config import get_settings


def create_llm(
    api_key: str | None = None,
    model: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
) -> BaseChatModel:
    """Create an LLM instance based on env configuration.

    Args:
        api_key: Key to authenticate with. Defaults to LLM_API_KEY.
        model: Model name. Defaults to LLM_MODEL.
        temperature: Sampling temperature. Defaults to LLM_TEMPERATURE.
        max_tokens: Output cap. Defaults to LLM_MAX_TOKENS.

    Returns:
        BaseChatModel: A LangChain-compatible chat model.

    Raises:
        ValueError: If provider is not supported.
    """
    settings = get_settings()
    api_key = api_key or settings.LLM_API_KEY
    model = model or settings.LLM_MODEL
    temperature = settings.LLM_TEMPERATURE if temperature is None else temperature
    max_tokens = max_tokens or settings.LLM_MAX_TOKENS

    match settings.LLM_PROVIDER:
        case "groq":
            from langchain_groq import ChatGroq

            return ChatGroq(
                model=model,
                api_key=api_key,
                temperature=temperature,
                max_tokens=max_tokens,
                max_retries=0,
            )

        case "openai":
            from langchain_openai import ChatOpenAI

            return ChatOpenAI(
                model=model,
                api_key=api_key,
                temperature=temperature,
                max_tokens=max_tokens,
                max_retries=0,
            )

        case "gemini":
            from langchain_google_genai import ChatGoogleGenerativeAI

            return ChatGoogleGenerativeAI(
                model=model,
                google_api_key=api_key,
                temperature=temperature,
                max_output_tokens=max_tokens,
            )

        case _:
            raise ValueError(
                f"Unknown LLM provider: '{settings.LLM_PROVIDER}'. "
                f"Supported: groq, openai, gemini"
            )


def create_embeddings():
    """Create an embedding model based on env configuration.

    Returns:
        Embeddings instance for vector generation.
    """
    settings = get_settings()
    api_key = settings.EMBEDDING_API_KEY or settings.LLM_API_KEY

    match settings.EMBEDDING_PROVIDER:
        case "gemini":
            from langchain_google_genai import GoogleGenerativeAIEmbeddings

            return GoogleGenerativeAIEmbeddings(
                model=f"models/{settings.EMBEDDING_MODEL}",
                google_api_key=api_key,
            )

        case "openai":
            from langchain_openai import OpenAIEmbeddings

            return OpenAIEmbeddings(
                model=settings.EMBEDDING_MODEL,
                api_key=api_key,
                dimensions=settings.EMBEDDING_DIMENSIONS,
            )

        case _:
            raise ValueError(
                f"Unknown embedding provider: '{settings.EMBEDDING_PROVIDER}'. "
                f"Supported: gemini, openai"
            )
