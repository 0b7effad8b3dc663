"""
Sistema de manejo de errores personalizado.

Este módulo define todas las excepciones personalizadas de la aplicación
y proporciona utilidades para manejo consistente de errores.

Política de degradación: los errores de servicios externos (ShipStation, UPS,
Redis) se capturan en el punto de la llamada y se convierten en un valor
centinela o una colección vacía; solo la entrada inválida del cliente llega
al cliente HTTP como 4xx.
"""

import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """
    Códigos de error estandardizados para la aplicación.
    """

    # Errores generales
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Errores de servicios externos
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    CARRIER_AUTH_FAILED = "CARRIER_AUTH_FAILED"
    TRACKING_FETCH_FAILED = "TRACKING_FETCH_FAILED"
    PERSISTENCE_FAILED = "PERSISTENCE_FAILED"


class ErrorSeverity(Enum):
    """
    Niveles de severidad para errores.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppException(Exception):
    """
    Excepción base para todas las excepciones personalizadas de la aplicación.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        is_retryable: bool = False,
    ):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error
            error_code: Código de error estandardizado
            details: Información adicional del error
            status_code: Código HTTP asociado
            severity: Severidad del error
            is_retryable: Si la operación puede reintentarse
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.severity = severity
        self.is_retryable = is_retryable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convierte la excepción a diccionario.

        Returns:
            Dict: Representación de la excepción
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "details": self.details,
            "status_code": self.status_code,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        """String representation del error."""
        return f"{self.error_code.value}: {self.message}"


class ValidationException(AppException):
    """
    Excepción para errores de validación de la entrada del cliente.
    """

    def __init__(
        self,
        message: str,
        field: str,
        invalid_value: Any = None,
        expected_format: Optional[str] = None,
        **kwargs,
    ):
        """
        Inicializa la excepción de validación.

        Args:
            message: Mensaje de error
            field: Campo que falló la validación
            invalid_value: Valor que causó el error
            expected_format: Formato esperado
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=422,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.field = field
        self.invalid_value = invalid_value
        self.expected_format = expected_format

        self.details.update(
            {
                "field": field,
                "invalid_value": str(invalid_value) if invalid_value is not None else None,
                "expected_format": expected_format,
            }
        )


class UpstreamUnavailable(AppException):
    """
    ShipStation inalcanzable o respondiendo con error.

    Se degrada a una lista de páginas parcial o vacía; nunca tumba la lectura.
    """

    def __init__(
        self,
        message: str,
        api_response_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.UPSTREAM_UNAVAILABLE,
            status_code=503,
            severity=ErrorSeverity.HIGH if (api_response_code or 500) >= 500 else ErrorSeverity.MEDIUM,
            is_retryable=True,
            **kwargs,
        )
        self.api_response_code = api_response_code
        self.endpoint = endpoint

        self.details.update({"api_response_code": api_response_code, "endpoint": endpoint})


class AuthError(AppException):
    """
    Fallo del intercambio OAuth con UPS (o credenciales ausentes).

    Se degrada a un registro centinela "UPS Auth Error" por cada consulta.
    """

    def __init__(self, message: str, api_response_code: Optional[int] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.CARRIER_AUTH_FAILED,
            status_code=502,
            severity=ErrorSeverity.HIGH,
            is_retryable=False,
            **kwargs,
        )
        self.api_response_code = api_response_code
        self.details.update({"api_response_code": api_response_code})


class TrackingFetchError(AppException):
    """
    Fallo al consultar un número de tracking concreto en UPS.
    """

    def __init__(
        self,
        message: str,
        tracking_number: Optional[str] = None,
        api_response_code: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.TRACKING_FETCH_FAILED,
            status_code=502,
            severity=ErrorSeverity.LOW,
            is_retryable=True,
            **kwargs,
        )
        self.tracking_number = tracking_number
        self.api_response_code = api_response_code

        self.details.update({"tracking_number": tracking_number, "api_response_code": api_response_code})


class PersistenceError(AppException):
    """
    Fallo de lectura/escritura en el almacén persistente.

    Se registra y se sigue sirviendo desde la caché en memoria.
    """

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.PERSISTENCE_FAILED,
            status_code=503,
            severity=ErrorSeverity.MEDIUM,
            is_retryable=True,
            **kwargs,
        )
        self.operation = operation
        self.details.update({"operation": operation})


# === FUNCIONES DE UTILIDAD ===


def create_error_response(exception: Exception, include_traceback: bool = False) -> Dict[str, Any]:
    """
    Crea respuesta de error estandardizada.

    Args:
        exception: Excepción a convertir
        include_traceback: Si incluir traceback

    Returns:
        Dict: Respuesta de error
    """
    if isinstance(exception, AppException):
        error_dict = exception.to_dict()
    else:
        error_dict = AppException(message=f"{type(exception).__name__}: {exception}").to_dict()

    if include_traceback:
        error_dict["traceback"] = "".join(
            traceback.format_exception(type(exception), exception, exception.__traceback__)
        )

    return {"error": True, **error_dict}


def log_error(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR,
) -> None:
    """
    Loggea un error de manera consistente.

    Args:
        exception: Excepción a loggear
        context: Contexto adicional
        level: Nivel de logging
    """
    context = context or {}

    log_data = {
        "exception_type": type(exception).__name__,
        "exception_message": str(exception),
        **context,
    }

    if isinstance(exception, AppException):
        message = f"{exception.error_code.value}: {exception.message}"
        log_data.update(
            {
                "error_code": exception.error_code.value,
                "severity": exception.severity.value,
                "is_retryable": exception.is_retryable,
            }
        )
    else:
        message = f"Unhandled exception: {type(exception).__name__}: {str(exception)}"

    logger.log(level, message, extra=log_data)
