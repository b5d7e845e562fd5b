from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Exa (search provider, hosted MCP endpoint)
    exa_api_key: str = ""
    exa_mcp_endpoint: str = "https://mcp.exa.ai/mcp"
    exa_protocol_version: str = "2025-03-26"
    exa_search_tool: str = "web_search_exa"
    exa_session_ttl_seconds: int = 240
    exa_request_timeout_seconds: float = 30.0
    exa_max_retries: int = 3
    exa_text_max_characters: int = 1500
    exa_highlight_sentences: int = 3
    exa_highlights_per_url: int = 2

    # OpenRouter (language model)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    fast_model: str = "anthropic/claude-haiku-4.5"  # query planning + extraction
    strong_model: str = "anthropic/claude-opus-4.1"  # verification scoring
    llm_timeout_seconds: float = 120.0

    # Pipeline tuning
    search_num_results: int = 15
    search_stagger_ms: int = 600
    extraction_max_results: int = 80
    verification_results_per_candidate: int = 5
    verification_batch_size: int = 8
    verification_max_concurrent_batches: int = 3
    verification_progress_every: int = 5
    rejected_cap: int = 20

    # Google Sheets export
    google_sheets_base_url: str = "https://sheets.googleapis.com/v4/spreadsheets"
    google_access_token: str = ""

    # App
    cors_origins: str = "http://localhost:3000"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_to_file: bool = False
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
