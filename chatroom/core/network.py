"""
chatroom.core.network
~~~~~~~~~~~~~~~~~~~~~

列出本机可供聊天客户端访问的地址，启动时打印到日志。

地址来自各网卡本身（``psutil.net_if_addrs()``），不依赖主机名解析。
"""
from __future__ import annotations

import socket

import psutil


def local_addresses() -> list[str]:
    """返回所有网卡上的 IPv4 地址（去重，保持顺序，排除 ``0.0.0.0``）。

    枚举不到任何地址时退回 ``127.0.0.1``。
    """
    addresses: list[str] = []
    for snics in psutil.net_if_addrs().values():
        for snic in snics:
            if snic.family != socket.AF_INET:
                continue
            if snic.address != "0.0.0.0" and snic.address not in addresses:
                addresses.append(snic.address)
    return addresses or ["127.0.0.1"]


def client_urls(port: int) -> list[str]:
    """拼出每个本机地址对应的聊天页面 URL。"""
    return [f"http://{address}:{port}/" for address in local_addresses()]
