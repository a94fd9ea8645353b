"""Identifiers shared by the discovery flow, content requests and the cogs."""

from __future__ import annotations

# Crafted result and the recipe that teaches it.
JUNIMO_PORTAL = "Junimatic.JunimoPortal"
JUNIMO_PORTAL_RECIPE = "Junimatic.JunimoPortalRecipe"

# The artifact buried on the farm and the quest it starts.
OLD_PORTAL_QIID = "(O)Junimatic.OldJunimoPortal"
OLD_PORTAL_QUEST = "Junimatic.OldJunimoPortalQuest"

# Scripted event at the wizard's house; seeing it unlocks the recipe.
DISCOVERY_EVENT = "Junimatic.JunimoPortalDiscoveryEvent"
DISCOVERY_EVENT_LOCATION = "WizardHouse"

# Persisted flag keys.  Values are diagnostic: the tile for the placement flag,
# the day number for the hint flag.
FLAG_PLACED_OLD_PORTAL = "Junimatic.OldJunimoPortalPlaced"
FLAG_ALERTED_PLAYER = "Junimatic.AlertedPlayer"

# Vanilla items used for disguise and crafting costs.
WEED_QIID = "(O)784"
WOOD_ID = "388"
SAP_ID = "92"
ANY_WILD_SEEDS_ID = "-777"

# The artifact never shows up before this many days have passed.
DEFAULT_MIN_DAYS = 7

# Chance per day that a pet digs up the artifact once it is available.
DEFAULT_FINDER_CHANCE = 0.02
