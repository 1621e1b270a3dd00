"""
优惠码分配异常
"""


class AllocationError(Exception):
    """分配过程异常基类"""
    def __init__(self, message: str, error_code: str = "ALLOCATION_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(message)


class StoreError(AllocationError):
    """数据库读写或领取失败"""
    def __init__(self, message: str, error_code: str = "STORE_ERROR"):
        super().__init__(message, error_code)


class IssuerError(AllocationError):
    """App Store Connect 调用失败"""
    def __init__(self, message: str, error_code: str = "ISSUER_ERROR"):
        super().__init__(message, error_code)


class IssuerHTTPError(IssuerError):
    """非 2xx 响应、网络错误或超时"""
    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message, "ISSUER_HTTP_ERROR")


class IssuerPayloadError(IssuerError):
    """响应缺少导出链接，或导出内容为空"""
    def __init__(self, message: str):
        super().__init__(message, "ISSUER_PAYLOAD_ERROR")


class UnexpectedExportLocationError(IssuerError):
    """导出链接不在预期前缀下"""
    def __init__(self, message: str):
        super().__init__(message, "ISSUER_UNEXPECTED_LOCATION")


class IssuerAuthError(IssuerError):
    """签发方请求令牌无法生成（私钥缺失或格式错误）"""
    def __init__(self, message: str):
        super().__init__(message, "ISSUER_AUTH_ERROR")
