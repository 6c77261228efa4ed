"""项目内使用的自定义异常定义。"""


class ImageCompressionError(Exception):
    """基础异常类型。"""


class InvalidConfigurationError(ImageCompressionError):
    """配置不合法时抛出。"""


class ProcessingAborted(ImageCompressionError):
    """任务被用户中断时抛出。"""


class ScanError(ImageCompressionError):
    """输入目录无法读取时抛出。"""


class ScanCancelledError(ScanError, ProcessingAborted):
    """扫描过程中收到取消请求。"""


class NoImagesFoundError(ImageCompressionError):
    """输入路径下没有受支持的图片。"""


class OutputFolderError(ImageCompressionError):
    """输出目录创建失败或在处理过程中被移除。"""


class ConversionError(ImageCompressionError):
    """单个文件编码失败。"""


class StagingError(ImageCompressionError):
    """复制到临时目录失败。"""


class AnalysisError(ImageCompressionError):
    """统计数据不完整时抛出。"""
