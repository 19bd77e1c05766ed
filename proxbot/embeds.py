from datetime import datetime, timezone

import discord

from proxbot.commands import CommandResult


SUCCESS_COLOR: discord.Colour = discord.Colour.orange()
ERROR_COLOR: discord.Colour = discord.Colour.red()
# Discord rejects embeds with more than 25 fields
MAX_FIELDS: int = 25


# ------------------------------
# Embed builder
# ------------------------------
class EmbedBuilder:
    def build_embed(self, result: CommandResult) -> discord.Embed:
        payload = result.payload
        embed: discord.Embed = discord.Embed(
            title=payload.get("title", ""),
            description=payload.get("message"),
            color=SUCCESS_COLOR if result.ok else ERROR_COLOR,
            timestamp=datetime.now(timezone.utc),
        )
        fields = payload.get("fields", [])
        for field in fields[:MAX_FIELDS]:
            embed.add_field(
                name=field["name"],
                value=field["value"],
                inline=field.get("inline", True),
            )
        if len(fields) > MAX_FIELDS:
            embed.set_footer(text=f"... and {len(fields) - MAX_FIELDS} more")
        return embed
