"""Render libvirt domain and network descriptors from specs.

Callers hand over structured specs only; all XML text is produced here.
"""

from __future__ import annotations

from xml.sax.saxutils import quoteattr

from .specs import NetworkSpec, VMSpec


def render_network(spec: NetworkSpec) -> str:
    dns_hosts = ''.join(
        f'    <host ip={quoteattr(r.ip)}>\n'
        f'      <hostname>{r.hostname}</hostname>\n'
        f'      <hostname>{r.fqdn}</hostname>\n'
        f'    </host>\n'
        for r in spec.reservations
    )
    dhcp_hosts = ''.join(
        f'      <host mac={quoteattr(r.mac)} name={quoteattr(r.fqdn)} ip={quoteattr(r.ip)}/>\n'
        for r in spec.reservations
    )
    return f"""<network>
  <name>{spec.name}</name>
  <forward mode='nat'>
    <nat>
      <port start='1024' end='65535'/>
    </nat>
  </forward>
  <bridge name={quoteattr(spec.bridge)} stp='on' delay='0'/>
  <domain name={quoteattr(spec.domain_suffix)} localOnly='yes'/>
  <dns>
{dns_hosts}  </dns>
  <ip address={quoteattr(spec.gateway)} netmask={quoteattr(spec.netmask)}>
    <dhcp>
      <range start={quoteattr(spec.dhcp_start)} end={quoteattr(spec.dhcp_end)}/>
{dhcp_hosts}    </dhcp>
  </ip>
</network>
"""


def render_domain(spec: VMSpec, *, network_name: str) -> str:
    return f"""<domain type='kvm'>
  <name>{spec.name}</name>
  <uuid>{spec.uuid}</uuid>
  <metadata>
    <libosinfo:libosinfo xmlns:libosinfo="http://libosinfo.org/xmlns/libvirt/domain/1.0">
      <libosinfo:os id="http://fedoraproject.org/fedora/43"/>
    </libosinfo:libosinfo>
  </metadata>
  <memory unit='MiB'>{spec.memory_mb}</memory>
  <currentMemory unit='MiB'>{spec.memory_mb}</currentMemory>
  <vcpu placement='static'>{spec.vcpu_count}</vcpu>
  <os firmware='efi'>
    <type arch='x86_64' machine='q35'>hvm</type>
    <boot dev='hd'/>
  </os>
  <features>
    <acpi/>
    <apic/>
    <vmport state='off'/>
  </features>
  <cpu mode='host-passthrough' check='none' migratable='on'/>
  <clock offset='utc'>
    <timer name='rtc' tickpolicy='catchup'/>
    <timer name='pit' tickpolicy='delay'/>
    <timer name='hpet' present='no'/>
  </clock>
  <on_poweroff>destroy</on_poweroff>
  <on_reboot>restart</on_reboot>
  <on_crash>destroy</on_crash>
  <pm>
    <suspend-to-mem enabled='no'/>
    <suspend-to-disk enabled='no'/>
  </pm>
  <devices>
    <emulator>/usr/bin/qemu-system-x86_64</emulator>
    <disk type='file' device='disk'>
      <driver name='qemu' type='qcow2' discard='unmap'/>
      <source file={quoteattr(str(spec.overlay_path))}/>
      <target dev='vda' bus='virtio'/>
    </disk>
    <controller type='usb' index='0' model='qemu-xhci' ports='15'/>
    <controller type='pci' index='0' model='pcie-root'/>
    <controller type='virtio-serial' index='0'/>
    <interface type='network'>
      <mac address={quoteattr(spec.mac_address)}/>
      <source network={quoteattr(network_name)}/>
      <model type='virtio'/>
    </interface>
    <serial type='pty'>
      <target type='isa-serial' port='0'>
        <model name='isa-serial'/>
      </target>
    </serial>
    <console type='pty'>
      <target type='serial' port='0'/>
    </console>
    <channel type='unix'>
      <target type='virtio' name='org.qemu.guest_agent.0'/>
    </channel>
    <channel type='spicevmc'>
      <target type='virtio' name='com.redhat.spice.0'/>
    </channel>
    <input type='tablet' bus='usb'/>
    <tpm model='tpm-crb'>
      <backend type='emulator' version='2.0'/>
    </tpm>
    <graphics type='spice' autoport='yes'>
      <listen type='address'/>
      <image compression='auto_glz'/>
      <gl enable='no'/>
    </graphics>
    <sound model='ich9'/>
    <audio id='1' type='spice'/>
    <video>
      <model type='qxl' ram='65536' vram='65536' vgamem='16384' heads='1' primary='yes'/>
    </video>
    <redirdev bus='usb' type='spicevmc'/>
    <redirdev bus='usb' type='spicevmc'/>
    <watchdog model='itco' action='reset'/>
    <memballoon model='virtio'/>
    <rng model='virtio'>
      <backend model='random'>/dev/urandom</backend>
    </rng>
  </devices>
</domain>
"""
