from pydantic import BaseModel, ValidationError

class SettingsSchema(BaseModel):
    audio_cues: bool = True
    track_reps: bool = True
    enable_warmup: bool = True
    enable_cooldown: bool = True
    enable_glass_motion: bool = True

SETTING_KEYS = tuple(SettingsSchema.model_fields)

def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
