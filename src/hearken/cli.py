#!/usr/bin/env python3
"""
Hearken CLI - start the wake-word voice assistant
"""
import argparse
import logging
import sys

from . import config as cfg
from .audio_io import MicCapture, PiperSpeaker, VoskRecognizer, load_vosk_model
from .dialogue import DialogueLoop
from .error_handler import (
    ConfigurationError,
    ErrorSeverity,
    ModelLoadError,
    error_context,
    get_error_handler,
)
from .logging_utils import set_log_level, setup_logger
from .tools import ToolDispatcher
from .turn_taking import TurnSettings, TurnTaker

logger = setup_logger("hearken.cli")


def build_assistant() -> TurnTaker:
    """Wire the configured engines, tools and chat service into a TurnTaker.

    Raises ModelLoadError when the recognition or synthesis model is unusable.
    """
    sample_rate = cfg.get_stt_sample_rate()
    model = load_vosk_model(cfg.get_stt_model_path())
    speaker = PiperSpeaker(cfg.get_tts_model_path())

    tools = ToolDispatcher.from_config()
    dialogue = DialogueLoop.from_config()
    if cfg.get_llm_api_key() is None:
        logger.warning("OPENAI_API_KEY is not set; requests are sent without authorization")

    return TurnTaker(
        TurnSettings.from_config(),
        dialogue,
        tools,
        speaker,
        recognizer_factory=lambda: VoskRecognizer(model, sample_rate),
        capture_factory=lambda: MicCapture(sample_rate),
    )


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="Hearken - wake-word voice assistant with tool calling",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  hearken                              # Use config/config.yaml
  hearken --config ~/hearken.yaml      # Use another configuration file
  hearken --debug                      # Log recognizer output and tool calls
        """
    )

    parser.add_argument(
        '--config',
        default='config/config.yaml',
        help='Path to configuration file'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args(argv)

    try:
        cfg.load(args.config)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    level = logging.DEBUG if args.debug else logging.getLevelName(cfg.get_log_level())
    set_log_level(level if isinstance(level, int) else logging.INFO)

    try:
        with error_context("cli", "startup", ErrorSeverity.CRITICAL):
            assistant = build_assistant()
    except ModelLoadError:
        sys.exit(1)

    try:
        assistant.run()
    except KeyboardInterrupt:
        stats = get_error_handler().get_error_stats()
        logger.info(f"Shutting down... ({stats['total_errors']} errors this session)")
        sys.exit(0)


if __name__ == '__main__':
    main()
