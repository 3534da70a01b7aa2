"""
Deadwatch - Parser Management
Status and manual refresh of the ingestion pipeline
"""

import logging
from datetime import datetime, timezone

import discord
from discord.ext import commands

from deadwatch.errors import StoreFailure
from deadwatch.models.records import StreamKind
from deadwatch.utils.embed_factory import EmbedFactory
from deadwatch.utils.feature_gate import Feature

logger = logging.getLogger(__name__)

STREAM_LABELS = {
    StreamKind.KILLS: "Killfeed",
    StreamKind.LOG: "Log",
}


class Parsers(commands.Cog):
    """
    PARSER MANAGEMENT
    - Pipeline status per configured server
    - Manual refresh of one server
    """

    def __init__(self, bot):
        self.bot = bot

    parser = discord.SlashCommandGroup("parser", "Parser management commands")

    async def check_premium(self, ctx: discord.ApplicationContext, feature: Feature) -> bool:
        """Respond and return False when the guild lacks the feature"""
        if await self.bot.db_manager.is_entitled(ctx.guild.id, feature):
            return True

        embed = EmbedFactory.create_embed(
            'error',
            title="Premium Required",
            description=f"**{feature.display_name}** requires an active premium subscription."
        )
        await ctx.respond(embed=embed, ephemeral=True)
        return False

    @parser.command(name="status", description="Check parser status")
    async def parser_status(self, ctx: discord.ApplicationContext):
        """Show scheduler state and the last cycle of each stream for this guild's servers"""
        try:
            if not await self.check_premium(ctx, Feature.SERVER_MONITORING):
                return

            ingestion = self.bot.ingestion
            servers = [s for s in await self.bot.db_manager.list_servers() if s.guild_id == ctx.guild.id]

            scheduler_status = "🟢 Running" if ingestion.scheduler.running else "🔴 Stopped"
            embed = discord.Embed(
                title="🔍 Parser Status",
                description=f"Scheduler: **{scheduler_status}**\n"
                            f"Killfeed every {ingestion.intervals[StreamKind.KILLS]}s, "
                            f"logs every {ingestion.intervals[StreamKind.LOG]}s",
                color=0x3498DB,
                timestamp=datetime.now(timezone.utc)
            )

            if not servers:
                embed.add_field(name="Servers", value="No servers configured for this guild", inline=False)

            for server in servers[:20]:
                lines = []
                for stream, label in STREAM_LABELS.items():
                    report = ingestion.cycle.last_report(server, stream)
                    if ingestion.cycle.is_running(server, stream):
                        lines.append(f"**{label}:** ⏳ running")
                    elif report is None:
                        lines.append(f"**{label}:** no run yet")
                    elif report.error:
                        lines.append(f"**{label}:** ❌ {report.error[:80]}")
                    else:
                        when = discord.utils.format_dt(report.finished_at, style='R')
                        lines.append(f"**{label}:** ✅ {report.events} events {when}"
                                     + (f" ({report.file})" if report.file else ""))

                embed.add_field(name=f"📡 {server.name} (ID: {server.server_id})", value="\n".join(lines), inline=False)

            queue_stats = self.bot.batch_sender.get_queue_stats()
            embed.set_footer(text=f"{queue_stats['total_queued_messages']} notifications queued | {EmbedFactory.FOOTER}")

            await ctx.respond(embed=embed)

        except StoreFailure as e:
            logger.error(f"Failed to check parser status: {e}")
            await ctx.respond("❌ Failed to retrieve parser status.", ephemeral=True)

    @parser.command(name="refresh", description="Manually refresh data for a server")
    @commands.has_permissions(administrator=True)
    @discord.option(name="server_id", description="Game server ID", input_type=int)
    async def parser_refresh(self, ctx: discord.ApplicationContext, server_id: int):
        """Run both ingestion streams for one server immediately"""
        try:
            if not await self.check_premium(ctx, Feature.SERVER_MONITORING):
                return

            # Defer response for potentially long operation
            await ctx.defer()

            results = await self.bot.ingestion.force_refresh(ctx.guild.id, server_id)
            if results is None:
                await ctx.respond("❌ Server not found in this guild!", ephemeral=True)
                return

            embed = EmbedFactory.create_embed(
                'success',
                title="🔄 Data Refresh Complete",
                description=f"Refreshed server **{server_id}**",
                fields=[
                    {"name": "Kills", "value": str(results[StreamKind.KILLS]), "inline": True},
                    {"name": "Log Events", "value": str(results[StreamKind.LOG]), "inline": True},
                ]
            )
            await ctx.respond(embed=embed)

        except StoreFailure as e:
            logger.error(f"Failed to refresh server {server_id}: {e}")
            await ctx.respond("❌ Failed to refresh data. Please try again later.")


def setup(bot):
    bot.add_cog(Parsers(bot))
