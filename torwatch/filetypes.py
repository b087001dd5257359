VIDEO_EXTENSIONS = frozenset(
    {"mp4", "mkv", "avi", "mov", "wmv", "flv", "webm", "m4v", "mpg", "mpeg", "3gp", "ts", "m2ts"}
)
AUDIO_EXTENSIONS = frozenset({"mp3", "flac", "wav", "aac", "ogg", "wma", "m4a", "opus", "ape", "ac3", "dts"})
ARCHIVE_EXTENSIONS = frozenset({"zip", "rar", "7z", "tar", "gz", "bz2", "xz", "lzma"})


def file_extension(filename: str) -> str:
    """Lower-cased text after the last dot of the final path component, or ""."""
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    _, dot, ext = name.rpartition(".")
    return ext.lower() if dot else ""


def is_video_file(filename: str) -> bool:
    return file_extension(filename) in VIDEO_EXTENSIONS


def is_audio_file(filename: str) -> bool:
    return file_extension(filename) in AUDIO_EXTENSIONS


def is_archive_file(filename: str) -> bool:
    return file_extension(filename) in ARCHIVE_EXTENSIONS


def file_icon(filename: str) -> str:
    if is_video_file(filename):
        return "🎬"
    if is_audio_file(filename):
        return "🎵"
    if is_archive_file(filename):
        return "📦"
    return "📄"
