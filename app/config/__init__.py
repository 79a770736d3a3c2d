from typing import Literal

from pydantic_settings import BaseSettings


class AppSettings(BaseSettings):
    """Global KubeFacts settings.

    Fields map directly onto environment variables (or the `.env` file).
    """

    # === Watch scope ===
    NAMESPACE: str = "default"  # namespace of the workload (pod) watch
    WATCH_TIMEOUT_SECONDS: int = 300  # server-side timeout of a single watch call
    REJECT_STALE_VERSIONS: bool = True

    # === Kubernetes API ===
    KUBE_API_URL: str | None = None  # falls back to the in-cluster service
    KUBE_TOKEN: str | None = None
    KUBE_CA_PATH: str | None = None
    KUBE_VERIFY_SSL: bool = True

    # === Fact store ===
    FACT_STORE_BACKEND: Literal["memory", "neo4j"] = "memory"
    NEO4J_URI: str = "bolt://localhost:7687"
    NEO4J_USER: str = "neo4j"
    NEO4J_PASSWORD: str = "neo4j"
    NEO4J_DB: str | None = None

    # === Service parameters ===
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    class Config:
        env_file = ".env"


app_settings = AppSettings()
