import os
from typing import Final, Optional


class ApiConfig:
    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        rate_limit: str = "30/minute",
        port: int = 3001,
    ) -> None:
        # Security / limits
        self.api_key = api_key
        self.rate_limit = rate_limit
        self.port = port

    @classmethod
    def from_env(cls) -> "ApiConfig":
        try:
            port = int(os.getenv("PORT", "3001"))
        except ValueError:
            port = 3001
        return cls(
            api_key=os.getenv("FLOW_API_KEY"),
            rate_limit=os.getenv("FLOW_RATE_LIMIT", "30/minute"),
            port=port,
        )


CONFIG: Final[ApiConfig] = ApiConfig.from_env()
