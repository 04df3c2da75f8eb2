"""监视模式

轮询各库源码 / 资源 / 翻译目录的修改时间，发现变化后重新构建。
构建期间发生的多次变化合并为一次重建；同一 Maker 的构建由其锁串行化。
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from qxtool.core.compile.maker import AppMaker
from qxtool.core.compile.models import MakerState
from qxtool.core.events import MADE, MAKING, EventEmitter
from qxtool.core.exceptions import QxToolError

logger = logging.getLogger(__name__)

Snapshot = dict[str, float]


class Watch:
    """单个 Maker 的轮询式监视器"""

    def __init__(self, maker: AppMaker, *, interval: float = 0.5) -> None:
        self.maker = maker
        self.interval = interval
        self.events = EventEmitter()
        self.builds = 0
        self.failures = 0
        self._stopped = False
        maker.events.forward(MAKING, self.events)
        maker.events.forward(MADE, self.events)

    def _watched_dirs(self) -> list[Path]:
        dirs: list[Path] = []
        for lib in self.maker.analyser.libraries.values():
            dirs.extend([lib.class_dir, lib.resource_dir, lib.translation_dir])
        return [d for d in dirs if d.is_dir()]

    def snapshot(self) -> Snapshot:
        result: Snapshot = {}
        for root in self._watched_dirs():
            for path in root.rglob("*"):
                if path.is_file():
                    try:
                        result[str(path)] = path.stat().st_mtime
                    except OSError:
                        continue
        return result

    def stop(self) -> None:
        self._stopped = True

    async def start(self, max_builds: int | None = None) -> None:
        """首次完整构建后进入轮询循环，达到 max_builds 或 stop() 后退出

        builds 只统计成功的构建；重新构建失败只记录日志，不退出循环。
        每次构建结束后 Maker 回到 WATCHING 状态。
        """
        # 构建前取快照，构建期间的变化会在下一轮被发现
        before = await asyncio.to_thread(self.snapshot)
        await self.maker.make()
        self.builds += 1
        self.maker.state = MakerState.WATCHING
        last = before
        while not self._stopped and (max_builds is None or self.builds < max_builds):
            await asyncio.sleep(self.interval)
            current = await asyncio.to_thread(self.snapshot)
            if current == last:
                continue
            changed = sorted(set(current) ^ set(last) | {
                k for k in current if k in last and current[k] != last[k]
            })
            logger.info("检测到 %d 个文件变化，重新构建", len(changed))
            last = current
            try:
                await self.maker.rebuild()
            except (QxToolError, OSError) as e:
                # 失败后保持轮询，等待下一次修改
                self.failures += 1
                logger.error("重新构建失败: %s", e)
                continue
            finally:
                self.maker.state = MakerState.WATCHING
            self.builds += 1
