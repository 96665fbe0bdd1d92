import os


class Settings:
    # Project
    PROJECT_NAME: str = "rigid_icp"
    VERSION: str = "0.3.0"

    # ICP defaults (overridable per run through IcpParameters)
    ICP_LAMBDA: float = float(os.getenv("ICP_LAMBDA", 1.0))
    ICP_MAX_ITER: int = int(os.getenv("ICP_MAX_ITER", 10))
    ICP_MIN_VARIATION: float = float(os.getenv("ICP_MIN_VARIATION", 1e-4))
    ICP_MAX_CORRESPONDENCE_DISTANCE: float = float(os.getenv("ICP_MAX_CORRESPONDENCE_DISTANCE", "inf"))
    ICP_WORKERS: int = int(os.getenv("ICP_WORKERS", 1))

    # Normal estimation for sources that come without normals
    ICP_NORMAL_RADIUS: float = float(os.getenv("ICP_NORMAL_RADIUS", 0.1))
    ICP_NORMAL_MAX_NN: int = int(os.getenv("ICP_NORMAL_MAX_NN", 30))

    # Logging
    ICP_LOG_LEVEL: str = os.getenv("ICP_LOG_LEVEL", "INFO")
    ICP_LOG_FILE: str = os.getenv("ICP_LOG_FILE", "")


settings = Settings()
