from fastapi import FastAPI
from squadbot.config import settings
from squadbot.database import engine, init_db
from squadbot.errors import PersistenceFailure
from squadbot.routes import health_routes
from squadbot.bot import SquadBot
from squadbot.services.discord_gateway import DiscordProvisioningGateway, DiscordSessionPresenter
from squadbot.services.lobby_service import LobbyService
from squadbot.services.restoration_service import RestorationService, SessionSweeper
from squadbot.services.session_registry import SessionRegistry
from squadbot.services.storage_service import SessionStorage
from squadbot.services.timeout_service import TimeoutScheduler
from contextlib import asynccontextmanager
import asyncio
import logging
import os
import signal
import uvicorn

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

def _terminate():
    os.kill(os.getpid(), signal.SIGTERM)

def _handle_uncaught(loop, context):
    # Only programming errors reach the loop handler
    exception = context.get("exception")
    logger.critical(f"Uncaught exception: {context.get('message')}", exc_info=exception)
    if exception is not None:
        _terminate()

def _on_bot_exit(task: asyncio.Task):
    if task.cancelled():
        return
    exception = task.exception()
    if exception is not None:
        logger.critical("Failed to start bot", exc_info=exception)
        _terminate()

def build_lobby(bot: SquadBot, storage: SessionStorage | None = None) -> LobbyService:
    lobby = LobbyService(
        registry=SessionRegistry(),
        storage=storage or SessionStorage(),
        scheduler=TimeoutScheduler(),
        gateway=DiscordProvisioningGateway(bot),
        presenter=DiscordSessionPresenter(bot),
    )
    bot.lobby = lobby
    return lobby

@asynccontextmanager
async def lifespan(app: FastAPI):
    asyncio.get_running_loop().set_exception_handler(_handle_uncaught)

    logger.info("Checking database connection and tables...")
    try:
        await init_db()
    except PersistenceFailure as e:
        logger.error(f"{e.message}. Bot will continue without database.")

    bot = SquadBot()
    lobby = build_lobby(bot)
    await RestorationService(lobby).restore()

    sweeper = SessionSweeper(lobby)
    sweeper.start()

    bot_task = None
    if settings.DISCORD_TOKEN:
        logger.info("Connecting to Discord...")
        bot_task = asyncio.create_task(bot.start(settings.DISCORD_TOKEN), name="discord-client")
        bot_task.add_done_callback(_on_bot_exit)
    else:
        logger.warning("DISCORD_TOKEN is not set, running without the Discord client")

    app.state.lobby = lobby
    app.state.bot = bot
    yield
    # Shutdown
    logger.info("Starting graceful shutdown...")
    await sweeper.stop()
    lobby.shutdown()
    if bot_task is not None:
        bot_task.remove_done_callback(_on_bot_exit)
        await bot.close()
        await asyncio.gather(bot_task, return_exceptions=True)
        logger.info("Discord client destroyed")
    await engine.dispose()
    logger.info("Database connections closed")

app = FastAPI(title="SquadBot", lifespan=lifespan)

# Routes
app.include_router(health_routes.router)

def run():
    uvicorn.run("squadbot.app:app", host=settings.HOST, port=settings.PORT, log_level="info")

if __name__ == "__main__":
    run()
