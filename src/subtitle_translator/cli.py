"""Command-line interface for the subtitle translator."""

from __future__ import annotations

import asyncio
import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from tqdm import tqdm

from .config import (
    CUSTOM_PROVIDER,
    DEFAULT_PROMPT,
    DEFAULT_SETTINGS_FILENAME,
    DEFAULT_TARGET_LANGUAGE,
    PROVIDER_PRESETS,
    EngineConfig,
    ProviderConfig,
)
from .catalog import ModelCatalog, OPENROUTER, check_connection, fetch_live_pricing
from .estimator import ModelPricing, format_cost, format_token_count, get_translation_estimate
from .export import ORIGINAL_FORMAT, ExportMode
from .models import ItemStatus
from .parser import save_text
from .progress import (
    JsonFileStore,
    TranslationProgress,
    get_progress_file,
    save_progress,
    load_progress,
    delete_progress,
)
from .session import SessionError, SessionState, TranslationSession

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S"
    )
    # HTTP 请求日志太吵
    for name in ("httpx", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Batch subtitle translator for SRT, VTT and ASS files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s movie.srt                              # Translate to Vietnamese
  %(prog)s movie.srt -l Japanese                  # Pick the target language
  %(prog)s movie.vtt --format srt --bilingual     # Bilingual SRT from a VTT file
  %(prog)s movie.srt --provider gemini            # Use Gemini
  %(prog)s movie.srt --resume                     # Resume interrupted translation
  %(prog)s movie.srt --estimate                   # Only print token/cost estimate
  %(prog)s --list-models --provider openrouter    # Browse OpenRouter models
        """
    )

    # Positional arguments
    parser.add_argument("input_path", nargs='?', default=None, help="Input subtitle file (.srt, .vtt, .ass)")
    parser.add_argument("output_path", nargs='?', default=None, help="Output file path")

    # Translation
    parser.add_argument("-l", "--target-language", default=DEFAULT_TARGET_LANGUAGE)
    parser.add_argument("--prompt", default=DEFAULT_PROMPT,
                        help="Instruction prompt; {language} is replaced with the target language")

    # API options
    providers = sorted([*PROVIDER_PRESETS, CUSTOM_PROVIDER])
    parser.add_argument("--provider", choices=providers, default=None,
                        help="Translation backend (default: last used, else openrouter)")
    parser.add_argument("--model", default=None, help="Model name (default: provider preset)")
    parser.add_argument("--api-key", help="API key (or set the provider's *_API_KEY variable)")
    parser.add_argument("--base-url", default=None, help="Endpoint for the custom provider")

    # Batching
    parser.add_argument("--batch-size", type=int, default=10)
    parser.add_argument("--max-batch-size", type=int, default=30,
                        help="Batch size used for files with more than 100 entries")
    parser.add_argument("--context-window", type=int, default=3,
                        help="Preceding translated entries sent as context")

    # Output
    parser.add_argument("--format", dest="output_format", default=ORIGINAL_FORMAT,
                        choices=[ORIGINAL_FORMAT, "srt", "vtt", "ass"])
    parser.add_argument("--bilingual", action="store_true",
                        help="Write source and translation together")
    parser.add_argument("--retry-failed", action="store_true",
                        help="Retry failed batches once after the run")

    # Progress
    parser.add_argument("--resume", action="store_true", help="Resume from saved progress")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress saving")

    # Misc
    parser.add_argument("--estimate", action="store_true", help="Print token and cost estimate, then exit")
    parser.add_argument("--list-models", action="store_true", help="List OpenRouter models (free first), then exit")
    parser.add_argument("--check-key", action="store_true", help="Check the OpenRouter API key and credits, then exit")
    parser.add_argument("--settings", default=None,
                        help=f"Preferences file (default: ~/{DEFAULT_SETTINGS_FILENAME})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")

    args = parser.parse_args(argv)
    if args.input_path is None and not (args.list_models or args.check_key):
        parser.error("the following arguments are required: input_path")
    return args


def build_provider_config(args: argparse.Namespace, session: TranslationSession) -> ProviderConfig:
    """Explicit flags win over remembered preferences."""
    if args.provider:
        return ProviderConfig.from_env(
            args.provider, model=args.model, api_key=args.api_key, base_url=args.base_url
        )
    return ProviderConfig.load_preferences(
        session.preferences, model=args.model, api_key=args.api_key, base_url=args.base_url
    )


def print_estimate(
    session: TranslationSession,
    args: argparse.Namespace,
    provider: ProviderConfig,
    pricing: Optional[ModelPricing] = None,
) -> None:
    estimate = get_translation_estimate(
        [item.text for item in session.items],
        args.target_language,
        args.prompt,
        provider.model,
        custom_pricing=pricing,
        context_per_batch=session.config.context_window,
        batch_size=session.config.batch_size,
    )
    print(f"Entries:        {len(session.items)}")
    print(f"Model:          {provider.model}")
    print(f"Input tokens:   ~{format_token_count(estimate.input_tokens)}")
    print(f"Output tokens:  ~{format_token_count(estimate.output_tokens)}")
    print(f"Total tokens:   ~{format_token_count(estimate.total_tokens)}")
    if estimate.pricing_source == "none":
        print("Estimated cost: unknown (no pricing data for this model)")
    else:
        source = "OpenRouter live pricing" if estimate.pricing_source == "live" else "built-in pricing"
        print(f"Estimated cost: ~{format_cost(estimate.estimated_cost)} ({source})")


def _require_openrouter(provider: ProviderConfig) -> Optional[str]:
    if provider.provider != OPENROUTER:
        return f"Only available for the {OPENROUTER} provider, got {provider.provider}"
    if not provider.api_key:
        return "API key is required. Set OPENROUTER_API_KEY or use --api-key"
    return None


async def list_models(provider: ProviderConfig) -> int:
    error = _require_openrouter(provider)
    if error:
        logger.error(error)
        return 1

    catalog = ModelCatalog.from_config(provider)
    free = await catalog.free_models()
    paid = await catalog.paid_models()

    print(f"Free models ({len(free)}):")
    for model in free:
        print(f"  {model.id}  ({model.name}, context {model.context_length})")
    print(f"Paid models ({len(paid)}):")
    for model in paid:
        pricing = model.pricing
        price = (
            f"${pricing.input_price:g}/${pricing.output_price:g} per 1M tokens"
            if pricing else "price unknown"
        )
        print(f"  {model.id}  ({model.name}, {price})")
    return 0


async def check_key(provider: ProviderConfig) -> int:
    error = _require_openrouter(provider)
    if error:
        logger.error(error)
        return 1

    result = await check_connection(provider)
    if not result.success:
        logger.error(f"API key check failed: {result.error}")
        return 1

    print(f"API key OK. Remaining credits: {result.credits:.2f}")
    if result.low_credits:
        logger.warning("Credits are exhausted, paid models will fail")
    return 0


class ProgressReporter:
    """Mirror session progress on a tqdm bar and persist it after each batch."""

    def __init__(
        self,
        session: TranslationSession,
        record: Optional[TranslationProgress],
        progress_path: Optional[Path],
    ):
        self.session = session
        self.record = record
        self.progress_path = progress_path
        self.bar = tqdm(total=100, desc="Translating", unit="%")
        self._last = -1

    def __call__(self, state: SessionState) -> None:
        if state.progress == self._last:
            return
        self._last = state.progress
        self.bar.n = state.progress
        self.bar.refresh()
        self.save()

    def save(self) -> None:
        if self.record is None or self.progress_path is None:
            return
        self.session.progress_record(self.record.input_file, self.record)
        save_progress(self.record, self.progress_path)

    def close(self) -> None:
        self.bar.close()


async def main_async(args: argparse.Namespace) -> int:
    """Main async workflow."""
    config = EngineConfig.from_args(args)

    # 验证配置
    error = config.validate()
    if error:
        logger.error(error)
        return 1

    settings_path = Path(args.settings).expanduser() if args.settings else Path.home() / DEFAULT_SETTINGS_FILENAME
    session = TranslationSession(config, preferences=JsonFileStore(settings_path))
    provider = build_provider_config(args, session)

    if args.list_models:
        return await list_models(provider)
    if args.check_key:
        return await check_key(provider)

    # 读取并解析字幕
    in_path = Path(args.input_path).expanduser().resolve()
    logger.info(f"Reading: {in_path}")
    try:
        session.load_file(in_path)
    except SessionError as e:
        logger.error(e)
        return 1

    if args.estimate:
        print_estimate(session, args, provider, await fetch_live_pricing(provider))
        return 0

    error = provider.validate()
    if error:
        logger.error(error)
        return 1

    # 进度管理
    progress_path = get_progress_file(in_path) if not args.no_progress else None
    record = None

    if args.resume and progress_path:
        record = load_progress(progress_path)
        if record and record.target_language == args.target_language:
            try:
                session.restore_progress(record)
                logger.info(f"Loaded progress: {record.completion_rate:.0%} complete")
            except SessionError as e:
                logger.warning(f"Ignoring progress file: {e}")
                record = None
        elif record:
            logger.info(f"Progress file is for {record.target_language}, starting fresh")
            record = None
        else:
            logger.info("No previous progress found, starting fresh")

    if progress_path and record is None:
        record = TranslationProgress.create(str(in_path), args.target_language, len(session.items))

    reporter = ProgressReporter(session, record, progress_path)
    unsubscribe = session.subscribe(reporter)
    try:
        outcome = await session.start_translation(args.target_language, args.prompt, provider)

        if args.retry_failed and not outcome.aborted:
            for entry in session.failed_batches:
                await session.retry_batch(entry.batch_index)
    finally:
        unsubscribe()
        reporter.save()
        reporter.close()

    if session.job_error:
        logger.error(f"Translation stopped: {session.job_error}")
        return 1

    # 保存结果
    mode = ExportMode.BILINGUAL if args.bilingual else ExportMode.TRANSLATED
    if args.output_path:
        out_path = Path(args.output_path)
    else:
        out_path = in_path.with_name(session.export_name(args.output_format, mode))

    save_text(session.export_as(args.output_format, mode), out_path)

    # 统计
    items = session.items
    translated = sum(1 for item in items if item.status == ItemStatus.TRANSLATED)
    failed = [item for item in items if item.status == ItemStatus.ERROR]

    for item in failed:
        logger.warning(f"Entry #{item.id} failed: {item.error}")

    if failed:
        failed_batches = ", ".join(str(e.batch_index) for e in session.failed_batches)
        logger.warning(f"{len(failed)} entries failed (batches {failed_batches}); rerun with --resume to retry them")
    elif progress_path:
        # 全部完成才清理进度文件
        delete_progress(progress_path)

    logger.info(f"Done! {translated}/{len(items)} translated. Saved to {out_path}")
    return 0


def main() -> None:
    """CLI entry point."""
    args = parse_arguments()
    setup_logging(args.verbose)

    try:
        exit_code = asyncio.run(main_async(args))
        sys.exit(exit_code)
    except KeyboardInterrupt:
        message = "Interrupted by user."
        if not args.no_progress:
            message += " Progress saved."
        print(f"\n{message}")
        sys.exit(130)
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
