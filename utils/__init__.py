# Utils package for Pixora backend

from .service_base import BaseService, ErrorCodes, ServiceResult, http_status_for, service_err, service_ok


__all__ = ["BaseService", "ErrorCodes", "ServiceResult", "http_status_for", "service_err", "service_ok"]
