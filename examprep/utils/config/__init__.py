from examprep.utils.config.env import Settings, settings
