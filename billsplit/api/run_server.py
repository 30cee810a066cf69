import os

import uvicorn
from dotenv import load_dotenv


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def main() -> None:
    load_dotenv()
    host = os.getenv("BILLSPLIT_HOST", "0.0.0.0")
    port = int(os.getenv("BILLSPLIT_PORT", "8080"))
    # reload watches the source tree; only meant for local development
    reload = env_flag("BILLSPLIT_RELOAD")
    uvicorn.run("billsplit.api.app:app", host=host, port=port, reload=reload, log_config=None)


if __name__ == "__main__":
    main()
