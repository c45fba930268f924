"""内置文件类型。通配 MIME 与具体 MIME 同时列出，便于前端展示受支持的类型。"""

from app.packages.filemanager.filetypes.base import FileTypeDefinition

VIDEO = FileTypeDefinition(
    identifier="video",
    label="Video",
    icon="video-camera",
    icon_color="text-red-400",
    color="success",
    mime_types=(
        "video/*",
        "video/mp4",
        "video/webm",
        "video/ogg",
        "video/quicktime",
        "video/x-msvideo",
        "video/x-matroska",
        "video/x-flv",
        "video/3gpp",
        "video/3gpp2",
    ),
    extensions=("mp4", "webm", "ogg", "ogv", "mov", "avi", "mkv", "flv", "3gp", "m4v", "wmv"),
    viewer="video",
    priority=10,
    metadata={"supports_streaming": True, "supports_duration": True, "supports_thumbnail": True},
)

IMAGE = FileTypeDefinition(
    identifier="image",
    label="Image",
    icon="photo",
    icon_color="text-blue-400",
    color="info",
    mime_types=(
        "image/*",
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/svg+xml",
        "image/bmp",
        "image/tiff",
        "image/x-icon",
        "image/heic",
        "image/heif",
        "image/avif",
    ),
    extensions=("jpg", "jpeg", "png", "gif", "webp", "svg", "bmp", "tiff", "tif", "ico", "heic", "heif", "avif"),
    viewer="image",
    priority=10,
    metadata={"supports_thumbnail": True, "supports_dimensions": True},
)

AUDIO = FileTypeDefinition(
    identifier="audio",
    label="Audio",
    icon="musical-note",
    icon_color="text-purple-400",
    color="danger",
    mime_types=(
        "audio/*",
        "audio/mpeg",
        "audio/mp3",
        "audio/wav",
        "audio/x-wav",
        "audio/ogg",
        "audio/webm",
        "audio/flac",
        "audio/aac",
        "audio/x-aac",
        "audio/mp4",
        "audio/x-m4a",
        "audio/midi",
        "audio/x-midi",
    ),
    extensions=("mp3", "wav", "ogg", "oga", "webm", "flac", "aac", "m4a", "wma", "midi", "mid", "opus"),
    viewer="audio",
    priority=10,
    metadata={"supports_duration": True},
)

TEXT = FileTypeDefinition(
    identifier="text",
    label="Text File",
    icon="document-text",
    icon_color="text-gray-500",
    color="gray",
    mime_types=(
        "text/plain",
        "text/html",
        "text/css",
        "text/javascript",
        "text/markdown",
        "text/xml",
        "text/csv",
        "text/x-php",
        "text/x-python",
        "text/x-java-source",
        "text/x-c",
        "text/x-c++",
        "text/x-ruby",
        "text/x-yaml",
        "text/x-log",
        "application/json",
        "application/xml",
        "application/javascript",
        "application/x-yaml",
        "application/x-sh",
    ),
    extensions=(
        "txt", "log", "ini", "conf", "cfg",
        "md", "markdown", "json", "xml", "csv", "yml", "yaml", "toml",
        "html", "htm", "css", "js", "ts", "jsx", "tsx", "vue", "svelte",
        "php", "py", "rb", "java", "kt", "c", "cpp", "h", "hpp", "cs", "go", "rs", "swift",
        "sh", "bash", "zsh", "fish", "bat", "ps1",
        "sql",
        "env", "gitignore", "dockerignore", "editorconfig",
    ),
    viewer="text",
    priority=10,
    metadata={"supports_syntax_highlighting": True, "max_preview_size": 1024 * 1024},
)

DOCUMENT = FileTypeDefinition(
    identifier="document",
    label="Document",
    icon="document-text",
    icon_color="text-green-500",
    color="warning",
    mime_types=(
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/vnd.oasis.opendocument.text",
        "application/vnd.oasis.opendocument.spreadsheet",
        "application/vnd.oasis.opendocument.presentation",
        "application/rtf",
    ),
    extensions=("doc", "docx", "odt", "rtf", "xls", "xlsx", "ods", "ppt", "pptx", "odp"),
    # 浏览器无法直接预览 Office 文档
    preview=False,
    priority=10,
)

ARCHIVE = FileTypeDefinition(
    identifier="archive",
    label="Archive",
    icon="archive-box",
    icon_color="text-yellow-500",
    color="warning",
    mime_types=(
        "application/zip",
        "application/x-zip-compressed",
        "application/x-rar-compressed",
        "application/vnd.rar",
        "application/x-7z-compressed",
        "application/x-tar",
        "application/gzip",
        "application/x-gzip",
        "application/x-bzip2",
        "application/x-xz",
        "application/x-lzip",
    ),
    extensions=("zip", "rar", "7z", "tar", "gz", "tgz", "bz2", "xz", "lz", "tar.gz", "tar.bz2", "tar.xz"),
    preview=False,
    priority=10,
    metadata={"can_extract": True},
)

PDF = FileTypeDefinition(
    identifier="pdf",
    label="PDF Document",
    icon="document-text",
    icon_color="text-red-500",
    color="danger",
    mime_types=("application/pdf",),
    extensions=("pdf",),
    viewer="pdf",
    priority=15,
)

OTHER = FileTypeDefinition(
    identifier="other",
    label="File",
    icon="document",
    icon_color="text-gray-400",
    color="gray",
    viewer="fallback",
    preview=False,
    priority=-1,
)

BUILTIN_TYPES = (VIDEO, IMAGE, AUDIO, TEXT, DOCUMENT, ARCHIVE, PDF)
