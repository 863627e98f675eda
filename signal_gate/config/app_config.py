#!filepath: signal_gate/config/app_config.py
import os

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel

from .log_config import LogConfig
from .labeler_config import LabelerConfig
from .window_config import WindowConfig
from .judge_config import JudgeConfig
from .validation_config import DispatchConfig, ValidationConfig


def project_root() -> str:
    """
    返回项目根目录（基于当前文件位置推导）:
    signal_gate/config/app_config.py → signal_gate/config → signal_gate → project_root
    """
    return os.path.abspath(os.path.join(os.path.dirname(__file__), "../../"))


def default_config_path() -> str:
    return os.path.join(os.path.dirname(__file__), "base.yml")


class AppConfig(BaseModel):
    log: LogConfig = LogConfig()
    labeler: LabelerConfig = LabelerConfig()
    window: WindowConfig = WindowConfig()
    judge: JudgeConfig = JudgeConfig()
    dispatch: DispatchConfig = DispatchConfig()
    validation: ValidationConfig = ValidationConfig()

    @classmethod
    def load(cls, path: str | None = None) -> "AppConfig":
        """
        加载 YAML 配置 + .env
        - 默认使用包内 signal_gate/config/base.yml
        - 不依赖当前工作目录
        - SIGNAL_GATE_OUTPUT_ROOT 覆盖 validation.output_root
        """
        load_dotenv(os.path.join(project_root(), ".env"))

        if path is None:
            path = default_config_path()

        if not os.path.exists(path):
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

        output_root = os.getenv("SIGNAL_GATE_OUTPUT_ROOT")
        if output_root:
            raw.setdefault("validation", {})["output_root"] = output_root

        return cls(**raw)
