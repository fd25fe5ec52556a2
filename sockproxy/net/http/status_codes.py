from http import HTTPStatus

RESPONSES = {status.value: status.phrase for status in HTTPStatus}

OK = HTTPStatus.OK.value
BAD_REQUEST = HTTPStatus.BAD_REQUEST.value
FORBIDDEN = HTTPStatus.FORBIDDEN.value
INTERNAL_SERVER_ERROR = HTTPStatus.INTERNAL_SERVER_ERROR.value
GATEWAY_TIMEOUT = HTTPStatus.GATEWAY_TIMEOUT.value


def is_valid(status_code: int) -> bool:
    return 100 <= status_code <= 599
