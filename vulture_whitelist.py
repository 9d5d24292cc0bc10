# Vulture whitelist for metarr
# This file contains false positives that should be ignored by vulture

# Pydantic model_config is used by the framework
_.model_config

# Pydantic validators are used by the framework
_.cls
_.validate_paths
_.validate_output_dir
_.normalize_input_exts
_.normalize_output_ext
_.validate_concurrency
_.validate_max_cpu
_.validate_min_free_mem
_.validate_use_gpu
_.validate_meta_purge
_.validate_rename_style
_.validate_operations
_.settings_customise_sources
_.env_settings
_.dotenv_settings
_.file_secret_settings

# Signal handler parameters are required by the interface
_.signum
_.frame

# Data class fields are read dynamically when filling or tagging
_.long_underscore_description
_.originally_available_at
_.formatted_date
_.string_date
_.episode_sort
_.hd_video
_.backup_created
_.file_modified

# Test mock attributes that vulture may not detect
_.return_value
_.side_effect

# Pytest fixtures with autouse=True are automatically used
patch_time_sleep
patch_decode_timeout
patch_thumbnail_retry
reset_reserved_names
clean_environment
