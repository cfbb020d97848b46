from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    qualys_username: str = ""
    qualys_password: str = ""
    qualys_api_url: str = "https://qualysapi.qualys.com"
    request_timeout: float = 300.0
    rate_limit_response_code: int = 409
    rate_limit_max_attempts: int = 5
    rate_limit_reserve: int = 30
    rate_limit_cooldown_ms: int = 1000
    host_asset_page_size: int = 100
    web_app_page_size: int = 100
    detection_batch_size: int = 500
    vuln_batch_size: int = 100
    web_app_concurrency: int = 5
    output_path: str = "graph.json"
    log_format: str = "text"
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
