from dataclasses import dataclass
import logging
from typing import Callable, Optional

import requests
from requests.auth import HTTPBasicAuth
from requests.structures import CaseInsensitiveDict

from .model import DEFAULT_CONTENT_TYPE, CompressionMethod, RequestSpec
from .util import split_userinfo


logger = logging.getLogger(__name__)


@dataclass
class TransportRequest:
    prepared: requests.PreparedRequest
    timeout: float


class RequestBuilder:
    """
    Turns a `RequestSpec` into a request the transport can send.

    Responses are never served from a transport-level cache; the prepared
    request is meant for a plain `requests.Session` and all caching goes
    through `courier.cache`.
    """

    def __init__(self, default_user_agent: Optional[Callable[[], str]] = None) -> None:
        self.__default_user_agent = default_user_agent

    def build(self, spec: RequestSpec, method: str) -> TransportRequest:
        url, username, password = split_userinfo(spec.url)
        auth = None
        if url != spec.url:
            logger.info('Found userinfo in url: {}'.format(url))
            if username is not None:
                # requests sends Basic credentials up front, without waiting for a challenge.
                auth = HTTPBasicAuth(username, password)

        headers = self._get_headers(spec)
        data = self._get_body(spec, method, headers)

        prepared = requests.Request(
            method=method.upper(),
            url=url,
            headers=headers,
            data=data,
            auth=auth,
        ).prepare()
        return TransportRequest(prepared=prepared, timeout=spec.timeout)

    def _get_headers(self, spec: RequestSpec) -> CaseInsensitiveDict:
        headers = CaseInsensitiveDict()
        accept = None
        user_agent = None

        for key, value in spec.headers.items():
            if key.lower() == 'accept':
                accept = value
            elif key.lower() == 'user-agent':
                user_agent = value
            else:
                headers[key] = value

        if accept is not None:
            headers['Accept'] = accept

        if user_agent is None and spec.enable_default_user_agent and self.__default_user_agent is not None:
            user_agent = self.__default_user_agent()
        if user_agent is not None:
            headers['User-Agent'] = user_agent

        if spec.enable_http_compression:
            headers['Accept-Encoding'] = 'gzip' if spec.decompression_method is CompressionMethod.GZIP else 'deflate'
        else:
            headers['Accept-Encoding'] = 'identity'

        headers['Connection'] = 'keep-alive' if spec.enable_keep_alive else 'close'

        if spec.host:
            headers['Host'] = spec.host
        if spec.referer:
            headers['Referer'] = spec.referer

        return headers

    def _get_body(self, spec: RequestSpec, method: str, headers: CaseInsensitiveDict) -> Optional[bytes]:
        if (spec.request_content_bytes is None
                and not spec.request_content
                and method.upper() != 'POST'):
            return None

        if spec.request_content_bytes is not None:
            body = spec.request_content_bytes
        else:
            body = (spec.request_content or '').encode('utf-8')

        content_type = spec.request_content_type or DEFAULT_CONTENT_TYPE
        if spec.append_charset_to_mime_type:
            content_type = content_type.rstrip(';') + '; charset="utf-8"'
        headers['Content-Type'] = content_type
        return body
