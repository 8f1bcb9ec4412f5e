from genericpath import isfile
from os import environ


ENV_VAR = 'CONNECTION_STRING'


def get_connection_string(default: str = '', env_file: str = '.env') -> str:
    """Return the connection string from the CONNECTION_STRING
        environment variable or, failing that, from a .env file in the
        working directory. Returns default if neither is set.
    """
    connection_string = environ.get(ENV_VAR)
    if not connection_string and isfile(env_file):
        with open(env_file, 'r') as f:
            lines = f.readlines()
        for line in lines:
            if line.startswith(f'{ENV_VAR}='):
                connection_string = line[len(ENV_VAR)+1:].strip()
                if connection_string[:1] in ('"', "'") and \
                    connection_string[-1:] == connection_string[:1]:
                    connection_string = connection_string[1:-1]
    return connection_string or default
