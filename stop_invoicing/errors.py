"""
异常定义模块

所有业务异常都继承 InvoicingError，CLI 统一捕获后以非零状态退出。
文件系统错误直接使用内置 OSError，不做包装。
"""


class InvoicingError(Exception):
    """开票流程中所有业务异常的基类"""


class ConfigError(InvoicingError):
    """配置文件不可读或配置值非法（启动时立即失败）"""


class ExtractionError(InvoicingError):
    """报告 PDF 中缺少必需字段（日期或成功停靠数）"""


class SchemaError(InvoicingError):
    """台账/模板缺少必需列或占位符，或单元格内容无法解析"""


class RenderError(InvoicingError):
    """发票文件生成失败"""


class PipelineError(InvoicingError):
    """
    流水线中止。

    state 记录失败前最后到达的状态，原始异常通过 __cause__ 链接。
    """

    def __init__(self, message: str, state=None):
        super().__init__(message)
        self.state = state
