"""
基础设施异常

业务上可预期的失败通过 OperationResult 返回，只有存储层本身不可用才抛出异常。
"""

from typing import Optional


class StorageError(Exception):
    """底层存储调用失败（连接中断、数据库不可用等）"""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.operation = operation

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self.message}"
        return self.message
