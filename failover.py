"""
Piped インスタンスのローテーション + Invidious フォールバックを行う実行器

1. 現在の Piped インスタンスで試行
2. 502/503/タイムアウト等 → 次の Piped インスタンスへローテーション（最大4回）
3. Piped が全滅 → Invidious で同様に試行（最大3回）
4. 全て失敗 → 最後のエラーを返す

404 などリクエスト自体の問題はローテーションせず即座に失敗を返す。
"""
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Tuple, TypeVar

import requests

from api_clients import ApiClientFactory, BaseApi
from config import MAX_INVIDIOUS_RETRIES, MAX_PIPED_RETRIES, RETRYABLE_STATUS_CODES
from instance_registry import InstanceRegistry, Provider

T = TypeVar('T')

_RETRYABLE_MESSAGES = ('timeout', 'timed out', 'reset', 'refused')


class InstancesExhaustedError(IOError):
    """一度も試行できずに全インスタンスを使い切った"""

    def __init__(self, message: str = 'All instances exhausted'):
        super().__init__(message)


class RequestCancelled(Exception):
    """呼び出し元がリクエストを破棄した"""

    def __init__(self, message: str = 'Request cancelled'):
        super().__init__(message)


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, value: T) -> 'Result[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> 'Result[T]':
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def message(self) -> str:
        if self.error is None:
            return ''
        return str(self.error) or type(self.error).__name__

    def unwrap(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value


def is_retryable_error(error: BaseException) -> bool:
    """インスタンスの不調とみなしてローテーションすべきエラーか判定"""
    if isinstance(error, requests.HTTPError):
        response = error.response
        return response is not None and response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, (requests.Timeout, TimeoutError)):
        return True
    # JSON デコード・スキーマ検証エラー（requests.JSONDecodeError は OSError でもある）
    if isinstance(error, ValueError):
        return False
    if isinstance(error, (requests.ConnectionError, OSError)):
        message = str(error).lower()
        return any(word in message for word in _RETRYABLE_MESSAGES)
    return False


class FailoverExecutor:
    """リポジトリの各呼び出しをインスタンスのフェイルオーバー付きで実行する"""

    def __init__(self, registry: InstanceRegistry, factory: ApiClientFactory,
                 max_piped_retries: int = MAX_PIPED_RETRIES,
                 max_invidious_retries: int = MAX_INVIDIOUS_RETRIES):
        self.registry = registry
        self.factory = factory
        self.max_retries = {
            Provider.PIPED: max_piped_retries,
            Provider.INVIDIOUS: max_invidious_retries,
        }

    def run(self, piped_call: Callable[[BaseApi], T],
            invidious_fallback: Optional[Callable[[BaseApi], T]] = None,
            cancel_event: Optional[threading.Event] = None) -> Result[T]:
        result, last_exception = self._run_phase(Provider.PIPED, piped_call, cancel_event)
        if result is not None:
            return result

        if invidious_fallback is not None:
            result, fallback_exception = self._run_phase(Provider.INVIDIOUS, invidious_fallback, cancel_event)
            if result is not None:
                if result.ok:
                    logging.info("✅ Invidious フォールバック成功")
                return result
            last_exception = fallback_exception or last_exception

        logging.error(f"全てのインスタンスで失敗しました: {last_exception}")
        return Result.failure(last_exception or InstancesExhaustedError())

    def _run_phase(self, provider: Provider, call: Callable[[BaseApi], Any],
                   cancel_event: Optional[threading.Event]) -> Tuple[Optional[Result], Optional[Exception]]:
        """1プロバイダ分の試行。結果が確定すれば Result、次へ進むなら None を返す"""
        last_exception = None
        attempts = self.max_retries[provider]
        for attempt in range(1, attempts + 1):
            if _is_cancelled(cancel_event):
                return Result.failure(RequestCancelled()), last_exception

            instance_url = self.registry.current_best(provider)
            try:
                client = self.factory.get(provider, instance_url)
                value = call(client)
            except Exception as e:
                # キャンセル後の失敗はインスタンスの健全性に反映しない
                if _is_cancelled(cancel_event):
                    return Result.failure(RequestCancelled()), last_exception
                last_exception = e
                logging.warning(f"{provider.value} 試行 {attempt}/{attempts} 失敗 ({instance_url}): {e}")

                if not is_retryable_error(e):
                    return Result.failure(e), last_exception

                self.registry.report_failure(provider, instance_url)
                next_url = self.registry.rotate_next(provider)
                if next_url is None:
                    logging.warning(f"{provider.value} に試行できるインスタンスがもうありません")
                    break
                self.factory.rebuild(provider, next_url)
                continue

            if _is_cancelled(cancel_event):
                return Result.failure(RequestCancelled()), last_exception
            self.registry.report_success(provider, instance_url)
            return Result.success(value), last_exception

        return None, last_exception


def _is_cancelled(cancel_event: Optional[threading.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()
