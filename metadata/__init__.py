from .types import DirectURL, FormatOption, ProcessInvocation, VideoInfo, format_duration

__all__ = ["DirectURL", "FormatOption", "ProcessInvocation", "VideoInfo", "format_duration"]
