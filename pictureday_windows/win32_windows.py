from __future__ import annotations

import ctypes
import sys
from ctypes import wintypes
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
TICK_COUNT_WRAP = 2**32


@dataclass(frozen=True)
class WindowInfo:
    handle: int
    title: str
    process_name: str


if sys.platform == "win32":
    class LASTINPUTINFO(ctypes.Structure):
        _fields_ = [
            ("cbSize", wintypes.UINT),
            ("dwTime", wintypes.DWORD),
        ]

    _user32 = ctypes.WinDLL("user32", use_last_error=True)
    _kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)

    _EnumWindowsProc = ctypes.WINFUNCTYPE(wintypes.BOOL, wintypes.HWND, wintypes.LPARAM)

    _user32.EnumWindows.argtypes = [_EnumWindowsProc, wintypes.LPARAM]
    _user32.EnumWindows.restype = wintypes.BOOL
    _user32.IsWindowVisible.argtypes = [wintypes.HWND]
    _user32.IsWindowVisible.restype = wintypes.BOOL
    _user32.GetWindowTextLengthW.argtypes = [wintypes.HWND]
    _user32.GetWindowTextLengthW.restype = ctypes.c_int
    _user32.GetWindowTextW.argtypes = [wintypes.HWND, wintypes.LPWSTR, ctypes.c_int]
    _user32.GetWindowTextW.restype = ctypes.c_int
    _user32.GetWindowThreadProcessId.argtypes = [wintypes.HWND, ctypes.POINTER(wintypes.DWORD)]
    _user32.GetWindowThreadProcessId.restype = wintypes.DWORD
    _user32.GetLastInputInfo.argtypes = [ctypes.POINTER(LASTINPUTINFO)]
    _user32.GetLastInputInfo.restype = wintypes.BOOL

    _kernel32.OpenProcess.argtypes = [wintypes.DWORD, wintypes.BOOL, wintypes.DWORD]
    _kernel32.OpenProcess.restype = wintypes.HANDLE
    _kernel32.QueryFullProcessImageNameW.argtypes = [
        wintypes.HANDLE,
        wintypes.DWORD,
        wintypes.LPWSTR,
        ctypes.POINTER(wintypes.DWORD),
    ]
    _kernel32.QueryFullProcessImageNameW.restype = wintypes.BOOL
    _kernel32.CloseHandle.argtypes = [wintypes.HANDLE]
    _kernel32.CloseHandle.restype = wintypes.BOOL
    _kernel32.GetTickCount.restype = wintypes.DWORD


def visible_windows() -> Iterator[WindowInfo]:
    """Yield visible top-level windows that have a title.

    Handles are collected up front; titles and process names are resolved
    lazily so callers can stop at the first match.
    """
    if sys.platform != "win32":
        return

    handles: list[int] = []

    @_EnumWindowsProc
    def _collect(hwnd, _lparam):
        handles.append(hwnd)
        return True

    if not _user32.EnumWindows(_collect, 0):
        raise ctypes.WinError(ctypes.get_last_error())

    for hwnd in handles:
        if not _user32.IsWindowVisible(hwnd):
            continue
        title = _window_title(hwnd)
        if not title:
            continue
        yield WindowInfo(handle=int(hwnd), title=title, process_name=_process_name_for_hwnd(hwnd))


def idle_milliseconds() -> int:
    """Milliseconds since the last keyboard or mouse input, 0 when unknown."""
    if sys.platform != "win32":
        return 0

    info = LASTINPUTINFO()
    info.cbSize = ctypes.sizeof(LASTINPUTINFO)
    if not _user32.GetLastInputInfo(ctypes.byref(info)):
        raise ctypes.WinError(ctypes.get_last_error())

    now_tick = _kernel32.GetTickCount()
    # Both counters are 32-bit and wrap every ~49.7 days.
    return (now_tick - info.dwTime) % TICK_COUNT_WRAP


def _window_title(hwnd: wintypes.HWND) -> str:
    length = _user32.GetWindowTextLengthW(hwnd)
    if length <= 0:
        return ""

    buffer = ctypes.create_unicode_buffer(length + 1)
    copied = _user32.GetWindowTextW(hwnd, buffer, len(buffer))
    if copied <= 0:
        return ""
    return buffer.value.strip()


def _process_name_for_hwnd(hwnd: wintypes.HWND) -> str:
    pid = wintypes.DWORD()
    _user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
    if pid.value == 0:
        return ""

    handle = _kernel32.OpenProcess(PROCESS_QUERY_LIMITED_INFORMATION, False, pid.value)
    if not handle:
        return ""

    try:
        size = wintypes.DWORD(2048)
        buffer = ctypes.create_unicode_buffer(size.value)
        if not _kernel32.QueryFullProcessImageNameW(handle, 0, buffer, ctypes.byref(size)):
            return ""
        name = Path(buffer.value).name
        if name.lower().endswith(".exe"):
            name = name[:-4]
        return name
    finally:
        _kernel32.CloseHandle(handle)
