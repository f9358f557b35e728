"""Brave Search web search tool plugin."""

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from nanoscout.agent.tools.base import Tool, ToolArgs, ToolExecutionContext, ToolOutput
from nanoscout.plugins.base import PluginApi, PluginInstance, PluginOnboardingApi, define_plugin

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


class BraveSearchSettings(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    tool_name: str = Field(default="web_search", min_length=1)


class SearchArgs(ToolArgs):
    query: str = Field(min_length=1)
    count: int | None = Field(default=None, ge=1, le=10)
    country: str | None = Field(default=None, min_length=2)
    language: str | None = Field(default=None, min_length=2)
    safe_search: bool | None = Field(default=None, alias="safeSearch")


class BraveSearchTool(Tool):
    """Search the web via Brave and return numbered results."""

    Args = SearchArgs

    def __init__(self, name: str, instance_id: str):
        self._name = name
        self._instance_id = instance_id

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Search the web using Brave Search and return concise results."

    async def execute(self, args: SearchArgs, context: ToolExecutionContext) -> ToolOutput:
        api_key = context.auth.get_api_key(self._instance_id)
        if not api_key:
            raise RuntimeError("Missing brave-search apiKey in auth store")

        params: dict[str, str] = {"q": args.query}
        if args.count:
            params["count"] = str(args.count)
        if args.country:
            params["country"] = args.country
        if args.language:
            params["search_lang"] = args.language
        if args.safe_search is not None:
            params["safesearch"] = "moderate" if args.safe_search else "off"

        async with httpx.AsyncClient() as client:
            response = await client.get(
                BRAVE_SEARCH_URL,
                params=params,
                headers={"Accept": "application/json", "X-Subscription-Token": api_key},
                timeout=20.0,
            )
        if response.status_code != 200:
            raise RuntimeError(f"Brave search failed: {response.status_code}")

        results = (response.json().get("web") or {}).get("results") or []
        limited = results[: args.count or 5]
        if not limited:
            return ToolOutput(text="No results found.", details={"count": 0})

        lines = []
        for index, item in enumerate(limited, start=1):
            block = f"{index}. {item.get('title') or 'Untitled'}\n{item.get('url', '')}\n{item.get('description', '')}"
            lines.append(block.strip())
        return ToolOutput(text="\n\n".join(lines), details={"count": len(limited)})


class BraveSearchPlugin(PluginInstance):
    def __init__(self, api: PluginApi):
        self.api = api
        self.tool = BraveSearchTool(api.settings.tool_name, api.instance_id)

    async def load(self) -> None:
        self.api.registrar.register_tool(self.tool)

    async def unload(self) -> None:
        self.api.registrar.unregister_tool(self.tool.name)


async def onboarding(api: PluginOnboardingApi) -> dict | None:
    api_key = api.prompt("Brave Search API key")
    if not api_key:
        return None
    api.auth.set_api_key(api.instance_id, api_key)
    return {}


plugin = define_plugin(
    settings_schema=BraveSearchSettings,
    create=BraveSearchPlugin,
    onboarding=onboarding,
)
