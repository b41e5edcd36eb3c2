import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

from http_server.request import Request
from http_server.response import Response, error, response
from http_server.server import HTTPServer
from kvstore import Store
from users.access import create_access
from users.config import Settings
from users.exceptions import InvalidPayloadError, RecordDecodeError, StorageFailure
from users.models import UserPayload
from users.repository import UserRepository

logger = logging.getLogger()


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


async def main(settings: Settings | None = None):
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    store = Store(
        settings.db_path,
        memtable_threshold=settings.memtable_threshold,
        fsync_interval_ms=settings.fsync_interval_ms,
        max_sstables=settings.max_sstables,
    )
    executor = ThreadPoolExecutor(
        max_workers=settings.storage_workers, thread_name_prefix="storage"
    )

    try:
        access = create_access(settings.storage_access, store, executor)
        repository = UserRepository(access, update_mode=settings.update_mode)
        logger.info(
            "Serving users from %s (access=%s, update=%s, workers=%d)",
            store.storage_dir,
            settings.storage_access.value,
            settings.update_mode.value,
            settings.storage_workers,
        )

        server = HTTPServer(settings.host, settings.port)
        await register_routes(server, repository)
        await server.start()
    finally:
        # Let in-flight store calls finish before the handle goes away
        executor.shutdown(wait=True)
        store.close()


def _payload(request: Request) -> UserPayload:
    if not request.has_valid_json:
        raise InvalidPayloadError("Request body is not valid JSON")
    return UserPayload.from_json(request.json())


def _storage_failure(e: StorageFailure) -> Response:
    if isinstance(e, RecordDecodeError):
        logger.error(f"Unreadable record: {e}")
    else:
        logger.error(f"Storage failure: {e}", exc_info=e.__cause__)
    return error(500, "Internal server error")


async def register_routes(server: HTTPServer, repository: UserRepository):

    @server.route('/users', ['POST'])
    async def create_user(request: Request) -> Response:
        try:
            payload = _payload(request)
        except InvalidPayloadError as e:
            return error(400, str(e))

        try:
            user = await repository.create(payload.name, payload.email)
        except StorageFailure as e:
            return _storage_failure(e)

        return response(status_code=201).json(user.to_dict())

    @server.route('/users/{user_id}', ['GET'])
    async def get_user(request: Request) -> Response:
        user_id = request.path_params["user_id"]

        try:
            user = await repository.read(user_id)
        except StorageFailure as e:
            return _storage_failure(e)

        if user is None:
            return error(404, f"User {user_id} not found")
        return response(status_code=200).json(user.to_dict())

    @server.route('/users/{user_id}', ['PUT'])
    async def update_user(request: Request) -> Response:
        user_id = request.path_params["user_id"]

        try:
            payload = _payload(request)
        except InvalidPayloadError as e:
            return error(400, str(e))

        try:
            user = await repository.update(user_id, payload.name, payload.email)
        except StorageFailure as e:
            return _storage_failure(e)

        # Only possible in strict update mode
        if user is None:
            return error(404, f"User {user_id} not found")
        return response(status_code=200).json(user.to_dict())

    @server.route('/users/{user_id}', ['DELETE'])
    async def delete_user(request: Request) -> Response:
        user_id = request.path_params["user_id"]

        try:
            removed = await repository.delete(user_id)
        except StorageFailure as e:
            return _storage_failure(e)

        if not removed:
            return error(404, f"User {user_id} not found")
        return response(status_code=204)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
