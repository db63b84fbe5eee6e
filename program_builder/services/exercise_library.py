"""
Клиент внешней библиотеки упражнений (только чтение: id → название, группа мышц).

- Redis-кеш с TTL (общий между воркерами); без REDIS_URL работает без кеша
- Circuit breaker: после N ошибок подряд пауза без запросов; не-JSON и битые элементы тоже ошибка
- Конструктор программ от библиотеки не зависит: упражнения хранят только exercise_id
"""
import json
import logging
import time
from typing import Dict, Iterable, List, Optional

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from program_builder.core.config import settings
from program_builder.schemas.program import ExerciseLibraryItem

logger = logging.getLogger(__name__)


class ExerciseLibraryUnavailable(httpx.HTTPError):
    """Библиотека недоступна: circuit breaker открыт или ответ не удалось разобрать."""


class ExerciseLibraryClient:
    CACHE_TTL = 3600        # секунд, каталог упражнений меняется редко
    FAILURE_THRESHOLD = 5   # ошибок подряд до открытия circuit breaker
    RECOVERY_TIMEOUT = 60   # секунд паузы при открытом circuit breaker

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        redis_url: Optional[str] = None,
    ):
        self.base_url = (settings.EXERCISE_LIBRARY_URL if base_url is None else base_url).rstrip("/")
        self.timeout = settings.EXERCISE_LIBRARY_TIMEOUT if timeout is None else timeout
        self.transport = transport
        self.redis_url = settings.REDIS_URL if redis_url is None else redis_url
        self._redis: Optional[aioredis.Redis] = None
        # circuit breaker state
        self._failures = 0
        self._open_until = 0.0

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    # ------------------------------------------------------------------
    # Circuit breaker
    # ------------------------------------------------------------------

    def _circuit_is_open(self) -> bool:
        if self._failures >= self.FAILURE_THRESHOLD:
            if time.monotonic() < self._open_until:
                return True
            self._failures = 0
        return False

    def _record_failure(self) -> None:
        self._failures += 1
        if self._failures >= self.FAILURE_THRESHOLD:
            self._open_until = time.monotonic() + self.RECOVERY_TIMEOUT
            logger.warning(f"Библиотека упражнений: circuit OPEN, пауза {self.RECOVERY_TIMEOUT}с")

    def _record_success(self) -> None:
        if self._failures > 0:
            logger.info("Библиотека упражнений: circuit CLOSED, сервис восстановлен")
        self._failures = 0

    # ------------------------------------------------------------------
    # Кеш
    # ------------------------------------------------------------------

    async def _get_redis(self) -> Optional[aioredis.Redis]:
        if not self.redis_url:
            return None
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=2,
                socket_timeout=2,
            )
        return self._redis

    @staticmethod
    def _cache_key(exercise_id: int) -> str:
        return f"exlib:exercise:{exercise_id}"

    async def _cache_get(self, ids: List[int]) -> Dict[int, ExerciseLibraryItem]:
        redis = await self._get_redis()
        if redis is None:
            return {}
        try:
            raw_items = await redis.mget([self._cache_key(i) for i in ids])
        except RedisError as e:
            logger.warning(f"Redis недоступен, читаем библиотеку без кеша: {e}")
            return {}
        result = {}
        for i, raw in zip(ids, raw_items):
            if not raw:
                continue
            try:
                result[i] = ExerciseLibraryItem(**json.loads(raw))
            except (ValueError, TypeError) as e:
                # битая запись считается промахом кеша и перезапишется после запроса
                logger.warning(f"Битая запись кеша {self._cache_key(i)}: {e}")
        return result

    async def _cache_set(self, items: Dict[int, ExerciseLibraryItem]) -> None:
        redis = await self._get_redis()
        if redis is None or not items:
            return
        try:
            async with redis.pipeline(transaction=False) as pipe:
                for exercise_id, item in items.items():
                    pipe.setex(self._cache_key(exercise_id), self.CACHE_TTL, item.model_dump_json())
                await pipe.execute()
        except RedisError as e:
            logger.warning(f"Redis недоступен, ответ библиотеки не закеширован: {e}")

    # ------------------------------------------------------------------
    # Запросы
    # ------------------------------------------------------------------

    async def _fetch(self, ids: List[int]) -> Dict[int, ExerciseLibraryItem]:
        if self._circuit_is_open():
            raise ExerciseLibraryUnavailable("Библиотека упражнений временно отключена")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
            ) as client:
                response = await client.get("/exercises", params={"ids": ",".join(str(i) for i in ids)})
                response.raise_for_status()
        except httpx.HTTPError:
            self._record_failure()
            raise

        try:
            result = self._parse(response.json())
        except (ValueError, TypeError) as e:
            # не-JSON или битые элементы: для вызывающего это та же недоступность
            self._record_failure()
            logger.warning(f"Библиотека упражнений вернула некорректный ответ: {e}")
            raise ExerciseLibraryUnavailable(f"Некорректный ответ библиотеки упражнений: {e}") from e
        self._record_success()
        return result

    @staticmethod
    def _parse(payload) -> Dict[int, ExerciseLibraryItem]:
        items = payload.get("items", []) if isinstance(payload, dict) else payload
        result = {}
        for raw in items:
            item = ExerciseLibraryItem(**raw)
            result[item.id] = item
        return result

    async def get_exercises(self, exercise_ids: Iterable[int]) -> Dict[int, ExerciseLibraryItem]:
        ids = sorted(set(exercise_ids))
        if not ids or not self.enabled:
            return {}

        result = await self._cache_get(ids)
        to_fetch = [i for i in ids if i not in result]
        if to_fetch:
            fetched = await self._fetch(to_fetch)
            await self._cache_set(fetched)
            result.update(fetched)

        missing = set(ids) - set(result)
        if missing:
            logger.warning(f"Библиотека упражнений не знает id: {sorted(missing)}")
        return result


exercise_library = ExerciseLibraryClient()


def get_exercise_library() -> ExerciseLibraryClient:
    return exercise_library
