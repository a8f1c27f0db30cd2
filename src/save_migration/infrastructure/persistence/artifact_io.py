"""存档文件读写。

- 读取使用作用域文件句柄，任何退出路径都会释放
- 写入先写同目录临时文件，flush + fsync 后 os.replace 原子替换，
  失败时删除临时文件，目标文件保持原样
"""

import os
import tempfile
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


def read_artifact(path: PathLike) -> bytes:
    """读取存档原始字节。"""
    with open(path, "rb") as f:
        return f.read()


def write_artifact_atomic(path: PathLike, data: bytes) -> Path:
    """原子写入字节到 path，返回目标路径。"""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
    return target
