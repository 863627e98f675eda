#!filepath: signal_gate/utils/filesystem.py
import json
from pathlib import Path
from typing import Any

from signal_gate.utils.logger import logs


class FileSystem:
    """
    统一文件系统工具
    - 自动创建目录
    - 安全写入文件（临时文件 → rename）
    - JSON / 文本结果文件
    """

    @staticmethod
    def ensure_dir(path: str | Path) -> Path:
        """
        创建目录（如果不存在）
        """
        p = Path(path)
        if not p.exists():
            p.mkdir(parents=True, exist_ok=True)
            logs.debug(f"[FS] 创建目录: {p}")
        return p

    @staticmethod
    def safe_write(path: str | Path, data: bytes) -> None:
        """
        原子写入（避免部分写入导致文件损坏）
        写入步骤：
            1) 先写入 tmp 文件
            2) rename → 正式文件
        """
        path = Path(path)
        FileSystem.ensure_dir(path.parent)

        tmp_path = path.with_suffix(path.suffix + ".tmp")

        with open(tmp_path, "wb") as f:
            f.write(data)

        tmp_path.replace(path)
        logs.debug(f"[FS] 原子写入完成: {path}")

    @staticmethod
    def write_text(path: str | Path, text: str) -> None:
        FileSystem.safe_write(path, text.encode("utf-8"))

    @staticmethod
    def write_json(path: str | Path, obj: Any) -> None:
        text = json.dumps(obj, indent=2, ensure_ascii=False, default=str)
        FileSystem.safe_write(path, text.encode("utf-8"))

    @staticmethod
    def read_json(path: str | Path) -> Any:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
