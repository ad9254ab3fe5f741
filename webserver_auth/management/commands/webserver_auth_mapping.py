from django.core.management.base import BaseCommand, CommandError

from webserver_auth.conf import PROVIDER
from webserver_auth.directory import DjangoMappingStore, DjangoUserDirectory
from webserver_auth.exceptions import PersistenceError
from webserver_auth.models import AccountMapping
from webserver_auth.resolver import AccountResolver


class Command(BaseCommand):
    help = "List, add or remove mappings between external names and local accounts."

    def add_arguments(self, parser):
        sub = parser.add_subparsers(dest="action", required=True)
        sub.add_parser("list")
        add = sub.add_parser("add")
        add.add_argument("authname")
        add.add_argument("username")
        remove = sub.add_parser("remove")
        remove.add_argument("authname")

    def handle(self, *args, **options):
        users = DjangoUserDirectory()
        resolver = AccountResolver(users, DjangoMappingStore())
        action = options["action"]

        if action == "list":
            mappings = AccountMapping.objects.filter(provider=PROVIDER).select_related("user")
            for mapping in mappings.order_by("authname"):
                self.stdout.write(f"{mapping.authname}\t{mapping.user.get_username()}")
        elif action == "add":
            user = users.find_by_username(options["username"])
            if user is None:
                raise CommandError(f"No local user named {options['username']}")
            try:
                resolver.create_mapping(user.user_id, options["authname"])
            except PersistenceError as err:
                raise CommandError(str(err)) from err
            self.stdout.write(f"Mapped {options['authname']} to {user.username}")
        elif action == "remove":
            if not resolver.remove_mapping(options["authname"]):
                raise CommandError(f"No mapping for {options['authname']}")
            self.stdout.write(f"Removed mapping for {options['authname']}")
