"""
Default configuration for the ForumSync cog.

One bot serves one forum/repository pair, so everything is global.
"""

DEFAULT_GLOBAL_CONFIG = {
    # GitHub side
    "github_token": None,  # PAT with issues read/write
    "github_owner": None,  # owner or org
    "github_repo": None,  # repo name only

    # Discord side
    "forum_channel": None,  # id of the bound forum channel

    # Webhook listener for GitHub deliveries
    "webhook_host": "0.0.0.0",
    "webhook_port": 8790,
    "webhook_path": "/github",
    "webhook_secret": None,  # X-Hub-Signature-256 is only checked when set
}
