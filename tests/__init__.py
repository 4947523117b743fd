# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from match_scheduler.models.alliance import Alliance, TeamAlliance  # noqa: F401
from match_scheduler.models.match import Match  # noqa: F401
from match_scheduler.models.playing_field import PlayingField  # noqa: F401
from match_scheduler.models.stage import Stage  # noqa: F401
from match_scheduler.models.team import Team  # noqa: F401
from match_scheduler.models.team_stats import TeamStats  # noqa: F401
from match_scheduler.models.tournament import Tournament  # noqa: F401
