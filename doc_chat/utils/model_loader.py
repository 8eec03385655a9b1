import os
import sys
from typing import Iterable, Optional

from dotenv import load_dotenv
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings
from langchain_groq import ChatGroq

from doc_chat.exception.custom_exception import DocumentChatException
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.config_loader import load_config

# env var holding the key for each provider
PROVIDER_KEYS = {
    "google": "GOOGLE_API_KEY",
    "groq": "GROQ_API_KEY",
}


class ApiKeyManager:
    """
    Loads the API keys needed by the configured providers from the
    environment (and .env). Keys for providers that are not in use are
    not required.
    """

    def __init__(self, providers: Iterable[str]):
        load_dotenv()
        self.keys = {}

        required = sorted({PROVIDER_KEYS[p] for p in providers if p in PROVIDER_KEYS})

        for k in required:
            if val := os.getenv(k):
                self.keys[k] = val
                log.info("Loaded API key from env | key=%s", k)
            else:
                log.error("Missing required API key | key=%s", k)

        if len(self.keys) != len(required):
            missing = [k for k in required if k not in self.keys]
            raise DocumentChatException(f"Missing API keys: {', '.join(missing)}", sys)

    def get(self, key: str) -> str:
        return self.keys[key]


class ModelLoader:
    """
    Responsible for:
    - Loading the embedding model used for ingestion and retrieval
    - Loading the RAG LLM used by the answer pipeline
    """

    def __init__(self, config: Optional[dict] = None):
        self.config = config if config is not None else load_config()
        log.info("YAML config loaded | config_keys=%s", list(self.config.keys()))

        providers = [self.config.get("embedding_model", {}).get("provider", "google")]
        providers += [cfg.get("provider") for cfg in self.config.get("llm", {}).values()]

        self.api_key_mgr = ApiKeyManager(providers)
        self.api_keys = self.api_key_mgr.keys

    def load_embeddings(self):
        """
        Load and return the embedding model.
        """
        emb_cfg = self.config["embedding_model"]
        provider = emb_cfg.get("provider", "google")
        model_name = emb_cfg["model_name"]

        if provider != "google":
            raise ValueError(f"Unsupported embedding provider {provider}")

        try:
            log.info("Loading embedding model | model=%s", model_name)
            return GoogleGenerativeAIEmbeddings(
                model=model_name, google_api_key=self.api_keys.get("GOOGLE_API_KEY")
            )
        except Exception as e:
            log.error("Error loading embedding model | error=%s", str(e))
            raise DocumentChatException("Failed to load embedding model", e) from e

    def load_llm(self, role: str = "rag"):
        """
        Load and return the configured LLM for a role.

        Args:
            role: key under `llm` in config.yaml ("rag")

        Returns:
            Configured chat model instance
        """
        if role not in self.config.get("llm", {}):
            log.error("LLM role not found in config | role=%s", role)
            raise ValueError(f"LLM role '{role}' not found in config")

        llm_config = self.config["llm"][role]

        provider = llm_config["provider"]
        model = llm_config["model_name"]
        temp = llm_config.get("temperature", 0.3)
        max_t = llm_config.get("max_tokens")
        max_retries = llm_config.get("max_retries", 2)
        # pool threads are not interrupted by run_sync_with_timeout, the client call must end itself
        request_timeout = self.config.get("timeouts", {}).get("generation_seconds", 60)

        log.info(
            "Loading LLM | role=%s | provider=%s | model=%s | timeout=%ss",
            role,
            provider,
            model,
            request_timeout,
        )

        if provider == "google":
            return ChatGoogleGenerativeAI(
                model=model,
                google_api_key=self.api_keys.get("GOOGLE_API_KEY"),
                temperature=temp,
                max_output_tokens=max_t,
                timeout=request_timeout,
                max_retries=max_retries,
            )

        if provider == "groq":
            return ChatGroq(
                model=model,
                api_key=self.api_keys.get("GROQ_API_KEY"),
                temperature=temp,
                max_tokens=max_t,
                timeout=request_timeout,
                max_retries=max_retries,
            )

        raise ValueError(f"Unsupported provider {provider}")
