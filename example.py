"""Example script demonstrating voxgate synthesis."""

import asyncio
import logging
import os

from voxgate import ProviderGateway, VoiceConfig
from voxgate.errors import user_message
from voxgate.monitoring import generate_metrics

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    """Store a key, validate it and synthesize one sentence."""

    logger.info("=" * 60)
    logger.info("voxgate text-to-speech gateway")
    logger.info("=" * 60)

    api_key = os.environ.get("ELEVENLABS_API_KEY")
    if not api_key:
        logger.error("Set ELEVENLABS_API_KEY to run this example")
        return

    async with ProviderGateway.from_settings() as gateway:
        await gateway.initialize_vault(os.environ.get("VOXGATE_MASTER_PASSWORD", "correct-password1"))

        logger.info("Validating API key...")
        if not await gateway.validate_secret("elevenlabs", api_key):
            logger.error("ElevenLabs rejected the API key")
            return
        await gateway.set_secret("elevenlabs", api_key)

        voice = VoiceConfig(voice_id="21m00Tcm4TlvDq8ikWAM", provider_id="elevenlabs")
        result = await gateway.synthesize("Hello from voxgate.", voice)

        if result.success:
            with open("hello.mp3", "wb") as f:
                f.write(result.audio)
            logger.info(f"Wrote {len(result.audio)} bytes to hello.mp3")
            logger.info(f"  Characters: {result.characters_processed}")
            logger.info(f"  Cost: ${result.cost:.6f}")
            logger.info(f"  Attempts: {result.attempts}")
        else:
            logger.error(f"Synthesis failed: {user_message(result.error_kind)}")
            logger.error(f"  Detail: {result.error_message}")

        status = gateway.get_rate_limit_status("elevenlabs")
        logger.info(f"Remaining this window: {status.remaining}/{status.capacity}")

        if gateway.usage is not None:
            stats = gateway.usage.statistics()
            logger.info(f"Requests recorded: {stats.total_requests} (${stats.total_cost:.6f})")

    logger.info("-" * 60)
    logger.info("Metrics:")
    for line in generate_metrics().splitlines():
        if line and not line.startswith("#"):
            logger.info(f"  {line}")


if __name__ == "__main__":
    asyncio.run(main())
