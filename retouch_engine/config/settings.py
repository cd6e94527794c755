# Application settings

# --- Pixel pipeline parameters ---
PIPELINE_DEFAULTS = {
    # ITU-R BT.601 luma weights, used by saturation and grayscale matrices
    "luma_weights": (0.299, 0.587, 0.114),

    # Smooth slider (0-10) -> blur radius
    "smooth_radius_factor": 2.5,
    "blur_radius_min": 0.1,
    "blur_radius_max": 25.0,

    # Sharpen slider (0-4) -> cross kernel neighbour weight
    "sharpen_factor": 0.2,

    # Ruddy slider (0-1) -> saturation, whiten slider (0-1) -> brightness
    "ruddy_saturation_factor": 0.6,
    "whiten_brightness_factor": 0.3,

    # Parameter ranges (value, min, max)
    "smooth_range": (0.0, 10.0),
    "whiten_range": (0.0, 1.0),
    "ruddy_range": (0.0, 1.0),
    "sharpen_range": (0.0, 4.0),

    # "Auto beauty" defaults used by the editor and batch mode
    "default_smooth": 4.0,
    "default_whiten": 0.3,
    "default_ruddy": 0.3,
    "default_sharpen": 1.0,
}

# --- Content fill (object removal) ---
CONTENT_FILL_DEFAULTS = {
    "model_path": "models/lama.onnx",
    "working_size": 512,
    "fallback_blur_radius": 18.0,
    "fallback_radius_min": 1.0,
    "fallback_radius_max": 25.0,
    # Execution providers, tried in order; CPU is always appended
    "preferred_providers": ["CUDAExecutionProvider", "CPUExecutionProvider"],
}

# --- Working / preview resolution ---
RESOLUTION_DEFAULTS = {
    "max_working_side": 2560,
    "max_preview_side": 1080,
    "oom_retry_scale": 0.5,
    "oom_max_retries": 1,
}

# --- Brush masks ---
MASK_DEFAULTS = {
    "brush_radius": 24.0,
    "brush_radius_min": 1.0,
    "brush_radius_max": 256.0,
    "feather": 12.0,
    "feather_max": 64.0,
    "soft_blur_radius": 12.0,
    "overlay_color": (255, 0, 0),
    "overlay_alpha": 96,
}

# --- Export ---
EXPORT_DEFAULTS = {
    "default_jpeg_quality": 100,
    "default_png_compression": 3,
    "default_format": ".jpg",
}

# --- Background rendering ---
SCHEDULER_DEFAULTS = {
    "debounce_seconds": 0.05,
}

# --- Batch ---
BATCH_DEFAULTS = {
    "max_workers": 2,
    "output_prefix": "retouched_",
    "filter_name": "柔和",
}

# --- Logging ---
LOGGING_LEVEL = "INFO" # Options: DEBUG, INFO, WARNING, ERROR
LOG_FILE = None # e.g. "retouch_engine.log"
