from dynaconf import Dynaconf, Validator

settings = Dynaconf(
    settings_files=["settings.toml", ".secrets.toml"],
    environments=True,
    env_switcher="ENV_FOR_DYNACONF",
    envvar_prefix="FOLLOWBOT",
    load_dotenv=True,
    validators=[
        Validator("DOMAIN", must_exist=True),
        Validator("BOT_USERNAME", must_exist=True),
        Validator("DATABASE_URL", must_exist=True),
        Validator("FETCH_TIMEOUT", "DELIVERY_TIMEOUT", is_type_of=(int, float), gt=0),
        Validator("KEY_SIZE", is_type_of=int, gte=2048),
        Validator("SIGNATURE_MAX_AGE", is_type_of=int, gt=0),
    ],
)
