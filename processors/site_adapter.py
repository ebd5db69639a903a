# Site-specific rewrites (e.g. a Tumblr post → an embed-friendly mirror).
#
# Each configured rule is a regex + re.sub replacement.  The first rule that
# matches rewrites the URL, which is then handed to the wrapped processors.
# With no matching rule the URL is not ours.

from typing import TYPE_CHECKING, Sequence

import services.logger as log
from services.message import OutgoingMessage
from processors import BaseProcessor

if TYPE_CHECKING:
    from drivers import BaseDriver
    from services.cache import PreviewCache
    from services.config_schema import PreviewBotConfig

l = log.get_logger()


class SiteAdapterProcessor(BaseProcessor):

    name = "site-adapter"

    def __init__(
        self,
        driver: "BaseDriver",
        cache: "PreviewCache",
        config: "PreviewBotConfig",
        delegates: Sequence[BaseProcessor] = (),
    ):
        super().__init__(driver, cache, config)
        self.delegates = list(delegates)

    def rewrite(self, uri: str) -> str | None:
        for rule in self.config.site_replacements:
            if rule.pattern.search(uri):
                return rule.pattern.sub(rule.replace, uri)
        return None

    async def _process(self, room_id: str, uri: str) -> list[OutgoingMessage] | None:
        rewritten = self.rewrite(uri)
        if rewritten is None:
            return None

        l.info(f"site-adapter: {uri} → {rewritten}")
        messages: list[OutgoingMessage] = []
        handled = False
        for processor in self.delegates:
            result = await processor.process(room_id, rewritten)
            if result is None:
                continue
            handled = True
            messages.extend(result)
        return messages if handled else None
