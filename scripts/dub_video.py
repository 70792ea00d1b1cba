import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

from dub_agent import PipelineConfig, VideoDubbingAgent
from dub_agent.config import MediaConfig, TTSConfig, TranscriptionConfig, TranslationConfig
from dub_agent.exports import write_bilingual_srt, write_transcript_json


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dub a Chinese video into English, keeping the background audio.")
    parser.add_argument("video", type=Path, help="Path to the source video file.")
    parser.add_argument("--output", type=Path, help="Where to write the dubbed video (default: <video>_en.mp4).")
    parser.add_argument("--ffmpeg", type=str, help="Path to the ffmpeg binary (default: $FFMPEG_BINARY or PATH).")
    parser.add_argument("--mix-level", type=float, default=0.15, help="Volume multiplier for the original audio.")
    parser.add_argument("--transcription-provider", type=str, choices=["openai", "local"], default="openai", help="Speech-to-text backend.")
    parser.add_argument("--whisper-model", type=str, default="base", help="Local Whisper model size (tiny/base/small/medium/large).")
    parser.add_argument("--language", type=str, default="zh", help="Source language hint for transcription.")
    parser.add_argument("--translation-provider", type=str, choices=["openai", "deepseek"], default="openai", help="Translation backend to use.")
    parser.add_argument("--translation-model", type=str, default="gpt-4o-mini", help="Model name for translation provider.")
    parser.add_argument("--translation-api-base", type=str, help="Custom base URL for translation API (optional).")
    parser.add_argument("--translation-api-key-env", type=str, help="Environment variable containing translation API key.")
    parser.add_argument("--temperature", type=float, default=0.2, help="Temperature for the translation model.")
    parser.add_argument("--tts-provider", type=str, choices=["openai", "edge"], default="openai", help="TTS backend to use.")
    parser.add_argument("--tts-model", type=str, default="gpt-4o-mini-tts", help="Model name for OpenAI TTS provider.")
    parser.add_argument("--work-dir", type=Path, help="Directory for intermediate files.")
    parser.add_argument("--subtitles", type=Path, help="Also write bilingual subtitles to this SRT file.")
    parser.add_argument("--transcript", type=Path, help="Also write the dubbed transcript to this JSON file.")
    parser.add_argument("--log-level", type=str, default="INFO", help="Logging level (DEBUG, INFO, WARNING, ERROR).")
    return parser.parse_args()


def build_config(args: argparse.Namespace) -> PipelineConfig:
    media = MediaConfig(ffmpeg_path=args.ffmpeg, original_audio_mix_level=args.mix_level)
    transcription = TranscriptionConfig(
        provider=args.transcription_provider,
        language=args.language,
        model_size=args.whisper_model,
    )

    translation_model = args.translation_model
    if args.translation_provider == "deepseek" and translation_model == "gpt-4o-mini":
        translation_model = "deepseek-chat"
    translation_api_key_env = args.translation_api_key_env
    if not translation_api_key_env:
        translation_api_key_env = "OPENAI_API_KEY" if args.translation_provider == "openai" else "DEEPSEEK_API_KEY"

    translation = TranslationConfig(
        provider=args.translation_provider,
        model=translation_model,
        temperature=args.temperature,
        api_base=args.translation_api_base,
        api_key_env=translation_api_key_env,
    )
    tts = TTSConfig(provider=args.tts_provider, model=args.tts_model)

    config = PipelineConfig(media=media, transcription=transcription, translation=translation, tts=tts)
    if args.work_dir:
        config.work_root = args.work_dir
    return config


def main() -> None:
    args = parse_args()
    load_dotenv()
    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.INFO))

    agent = VideoDubbingAgent(config=build_config(args))
    output = args.output or args.video.with_name(f"{args.video.stem}_en.mp4")
    result = agent.dub(args.video, output)

    logging.info("Video with English dub: %s", result.video_path)
    if args.subtitles:
        logging.info("Bilingual subtitles: %s", write_bilingual_srt(result.lines, args.subtitles))
    if args.transcript:
        logging.info("Transcript metadata: %s", write_transcript_json(result.lines, args.transcript))


if __name__ == "__main__":
    main()
