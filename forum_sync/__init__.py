__red_end_user_data_statement__ = (
    "This cog mirrors forum posts and messages to GitHub issues. "
    "Message content, display names and avatars are published on GitHub."
)


async def setup(bot) -> None:
    from .forum_sync import ForumSync

    await bot.add_cog(ForumSync(bot))
