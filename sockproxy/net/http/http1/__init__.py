from .assemble import assemble_request
from .assemble import assemble_request_head
from .read import expected_body_size
from .read import read_response
from .read import response_complete
from .read import ResponseFraming

__all__ = [
    "assemble_request",
    "assemble_request_head",
    "read_response",
    "response_complete",
    "expected_body_size",
    "ResponseFraming",
]
